"""
Content Humanizer

Applies a campaign's imperfection list to a generated post so it reads less
like machine output. Transformations run in list order and only ever touch
text: HTML tags and markdown link targets are left as they are, and no
newlines are added or removed.
"""

import random
import re
from typing import Callable, Dict, List, Optional

from utils.logger import get_logger

logger = get_logger(__name__)

# Left untouched: code fences, inline code, <pre>/<code> elements, HTML comments,
# HTML tags and the "](target)" part of markdown links. An unclosed fence runs to the end.
PROTECTED_PATTERN = re.compile(
    r'(```[\s\S]*?(?:```|$)'
    r'|`[^`\n]*`'
    r'|<pre\b[^>]*>[\s\S]*?</pre>'
    r'|<code\b[^>]*>[\s\S]*?</code>'
    r'|<!--[\s\S]*?-->'
    r'|</?[A-Za-z][^<>]*>'
    r'|\]\([^)]*\))',
    re.IGNORECASE)

OPINION_LEAD_INS = [
    "In my experience,",
    "I believe that",
    "From what I've observed,",
    "Personally, I think",
]

CASUAL_REPLACEMENTS = [
    ("therefore", "so"),
    ("however", "but"),
    ("furthermore", "plus"),
    ("additionally", "also"),
    ("consequently", "so"),
    ("nevertheless", "still"),
    ("utilize", "use"),
]

CONTRACTIONS = [
    ("do not", "don't"),
    ("does not", "doesn't"),
    ("will not", "won't"),
    ("cannot", "can't"),
    ("is not", "isn't"),
    ("are not", "aren't"),
    ("it is", "it's"),
    ("we are", "we're"),
    ("you are", "you're"),
    ("they are", "they're"),
]

TYPO_EVERY = 10
NON_PROSE_LINE = re.compile(r'^\s*(#|[-*+]\s|>|\||\d+[.)]\s|```|<)')
PARAGRAPH_TAG = re.compile(r'<p(\s[^>]*)?>', re.IGNORECASE)
PRONOUN_STARTS = {"I", "I'm", "I've", "I'd", "I'll"}
# Words that are only capitalized because they open the sentence
COMMON_OPENERS = {
    "a", "an", "the", "this", "that", "these", "those", "it", "there", "here",
    "we", "you", "they", "our", "your", "my", "most", "many", "some", "every",
    "each", "all", "if", "when", "while", "once", "so", "but", "and", "to",
    "in", "on", "for", "with", "what", "why", "how", "no", "not", "even",
    "just", "sometimes", "often",
}


def _match_case(source: str, replacement: str) -> str:
    if len(source) > 1 and source.isupper():
        return replacement.upper()
    if source[:1].isupper():
        return replacement[:1].upper() + replacement[1:]
    return replacement


def _phrase_pattern(phrase: str) -> re.Pattern:
    words = [re.escape(w) for w in phrase.split()]
    return re.compile(r'\b' + r'[ \t]+'.join(words) + r'\b', re.IGNORECASE)


def map_text_segments(body: str, transform: Callable[[str], str]) -> str:
    """Apply ``transform`` to the text between tags and link targets."""
    parts = PROTECTED_PATTERN.split(body)
    for i in range(0, len(parts), 2):
        if parts[i]:
            parts[i] = transform(parts[i])
    return "".join(parts)


def _replace_phrases(body: str, pairs) -> str:
    compiled = [(_phrase_pattern(source), target) for source, target in pairs]

    def transform(text: str) -> str:
        for pattern, target in compiled:
            text = pattern.sub(lambda m: _match_case(m.group(0), target), text)
        return text

    return map_text_segments(body, transform)


def _lowercase_first_word(word: str, body: str) -> bool:
    """
    Whether a sentence-initial word can be lowercased after a lead-in.

    Pronouns, acronyms and words that look like proper nouns keep their
    capital. A word counts as common if it is a known sentence opener or
    appears in lowercase elsewhere in the body.
    """
    bare = re.sub(r"[^\w']", "", word)
    if not bare or bare in PRONOUN_STARTS or (len(bare) > 1 and bare.isupper()):
        return False
    lower = bare.lower()
    if lower in COMMON_OPENERS:
        return True
    return re.search(r'\b' + re.escape(lower) + r'\b', body) is not None


def _with_lead_in(text: str, lead_in: str, body: str) -> str:
    stripped = text.lstrip()
    indent = text[:len(text) - len(stripped)]
    first_word = stripped.split(" ", 1)[0]
    if _lowercase_first_word(first_word, body):
        stripped = stripped[:1].lower() + stripped[1:]
    return f"{indent}{lead_in} {stripped}"


def add_personal_opinion(body: str, rng) -> str:
    """Open the first prose paragraph with a first-person lead-in."""
    lead_in = rng.choice(OPINION_LEAD_INS)

    match = PARAGRAPH_TAG.search(body)
    if match:
        rest = body[match.end():]
        if rest.startswith("<"):
            return f"{body[:match.end()]}{lead_in} {rest}"
        return body[:match.end()] + _with_lead_in(rest, lead_in, body)

    lines = body.split("\n")
    in_code = False
    for i, line in enumerate(lines):
        if line.strip().startswith("```"):
            in_code = not in_code
            continue
        if in_code or not line.strip() or NON_PROSE_LINE.match(line):
            continue
        lines[i] = _with_lead_in(line, lead_in, body)
        return "\n".join(lines)
    return body


def add_typo(body: str, rng=None) -> str:
    """Turn every tenth "the" (starting with the first) into "teh"."""
    pattern = re.compile(r'\bthe\b', re.IGNORECASE)
    seen = 0

    def swap(match: re.Match) -> str:
        nonlocal seen
        seen += 1
        if (seen - 1) % TYPO_EVERY == 0:
            return _match_case(match.group(0), "teh")
        return match.group(0)

    return map_text_segments(body, lambda text: pattern.sub(swap, text))


def add_casual_language(body: str, rng=None) -> str:
    return _replace_phrases(body, CASUAL_REPLACEMENTS)


def add_contractions(body: str, rng=None) -> str:
    return _replace_phrases(body, CONTRACTIONS)


TRANSFORMS: Dict[str, Callable] = {
    "add_personal_opinion": add_personal_opinion,
    "add_typo": add_typo,
    "add_casual_language": add_casual_language,
    "add_contractions": add_contractions,
}


def humanize(body: str, imperfection_list: Optional[List[str]], rng: Optional[random.Random] = None) -> str:
    """
    Apply the imperfection list to a post body.

    Args:
        body: Post body (markdown or HTML)
        imperfection_list: Ordered transformation tags; unknown tags are ignored
        rng: Random source for the opinion lead-in

    Returns:
        str: The transformed body, or the input unchanged for an empty list
    """
    if not body or not imperfection_list:
        return body

    rng = rng or random.Random()
    for tag in imperfection_list:
        transform = TRANSFORMS.get(tag)
        if transform is None:
            logger.debug(f"Ignoring unknown imperfection '{tag}'")
            continue
        body = transform(body, rng)
    return body
