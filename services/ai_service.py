"""
AI Service Module

This module handles content generation for campaigns. Text (titles, post bodies,
keywords) comes from Google's Gemini API; featured images come from OpenAI's
image API. Prompt building and response parsing are plain functions so they
can be tested without a provider.
"""

import json
import random
import re
from typing import Optional, List, Dict, Any, Tuple

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from openai import OpenAI

from config import settings
from data.models import Campaign, GeneratedContent, ToneOfVoice, WritingStyle
from services import content_types
from utils.exceptions import ProviderError, ProviderNotConfigured, QuotaExceeded
from utils.helpers import strip_html_tags, strip_markdown, truncate_text
from utils.logger import get_logger

logger = get_logger(__name__)

TONE_INSTRUCTIONS = {
    ToneOfVoice.CONVERSATIONAL: "Write in a conversational, friendly tone as if talking to a friend.",
    ToneOfVoice.FORMAL: "Write in a professional, formal tone suitable for business audiences.",
    ToneOfVoice.HUMOROUS: "Write with humor and wit, making it entertaining while informative.",
    ToneOfVoice.STORYTELLING: "Write using storytelling techniques, with engaging narratives and examples.",
}

TONE_DESCRIPTIONS = {
    ToneOfVoice.CONVERSATIONAL: "Friendly, approachable, and easy to read",
    ToneOfVoice.FORMAL: "Professional, authoritative, and structured",
    ToneOfVoice.HUMOROUS: "Light-hearted, witty, and entertaining",
    ToneOfVoice.STORYTELLING: "Narrative-driven, engaging, and personal",
}

STYLE_INSTRUCTIONS = {
    WritingStyle.PAS: "Use the Problem-Agitate-Solution (PAS) framework: identify a problem, "
                      "agitate it, then provide a solution.",
    WritingStyle.AIDA: "Use the AIDA framework: Attention, Interest, Desire, Action.",
    WritingStyle.LISTICLE: "Write as a numbered list with clear headings and actionable points.",
}

STYLE_DESCRIPTIONS = {
    WritingStyle.PAS: "Problem-Agitation-Solution structure",
    WritingStyle.AIDA: "Attention-Interest-Desire-Action structure",
    WritingStyle.LISTICLE: "List-based format with numbered points",
}

CONTENT_ROLE = ("You are an expert content writer who creates engaging, SEO-optimized blog posts. "
                "Always write in the specified tone and style, and include relevant keywords naturally.")
TITLE_ROLE = ("You are an expert content strategist who creates compelling, SEO-optimized blog post "
              "titles. Generate titles that are engaging, click-worthy, and aligned with the business context.")
KEYWORD_ROLE = "You are an SEO expert. Generate 5-8 relevant keywords for the given topic and content."

ENUMERATION_PATTERN = re.compile(r'^\s*(?:\d+\s*[.):-]|[-*•])\s*')
QUOTE_CHARS = '"\'“”‘’'
# Labels may come wrapped in emphasis, e.g. **TITLE:** or **CONTENT**:
TITLE_LABEL = re.compile(r'[*_]*TITLE[*_]*:[*_]*\s*(.+?)(?:\n|$)', re.IGNORECASE)
CONTENT_LABEL = re.compile(r'[*_]*CONTENT[*_]*:[*_]*\s*([\s\S]+)', re.IGNORECASE)


# =============================================================================
# Prompt building
# =============================================================================

def build_title_prompt(campaign: Campaign, count: int) -> str:
    """Prompt asking for a numbered list of ``count`` titles."""
    return f"""{TITLE_ROLE}

Generate {count} compelling blog post titles for the following campaign:

Topic: {campaign.topic}
Business Context: {campaign.context}
Tone of Voice: {TONE_DESCRIPTIONS.get(campaign.tone_of_voice, TONE_DESCRIPTIONS[ToneOfVoice.CONVERSATIONAL])}
Writing Style: {STYLE_DESCRIPTIONS.get(campaign.writing_style, STYLE_DESCRIPTIONS[WritingStyle.PAS])}

Requirements:
- Titles should be 50-70 characters long for optimal SEO
- Make them engaging and click-worthy
- Include relevant keywords naturally
- Align with the business context provided
- Vary the approach (how-to, listicle, question, statement, etc.)
- Avoid clickbait but make them compelling

Return the titles as a numbered list (1. Title here, 2. Title here, etc.)"""


def build_content_prompt(campaign: Campaign, content_type: str, title: Optional[str] = None) -> str:
    """
    Build the post generation prompt.

    Deterministic for a given campaign, content type and title.

    Args:
        campaign: The campaign being processed
        content_type: Content type key from the template catalog
        title: Approved title the post must use, if any

    Returns:
        str: The full prompt
    """
    sections = [CONTENT_ROLE, content_types.build_prompt(content_type, campaign)]

    if campaign.context:
        sections.append(f"Context: {campaign.context}")
    sections.append(f"Tone: {TONE_INSTRUCTIONS.get(campaign.tone_of_voice, TONE_INSTRUCTIONS[ToneOfVoice.CONVERSATIONAL])}")
    sections.append(f"Style: {STYLE_INSTRUCTIONS.get(campaign.writing_style, STYLE_INSTRUCTIONS[WritingStyle.PAS])}")

    if campaign.imperfection_list:
        sections.append(f"Avoid these topics/approaches: {', '.join(campaign.imperfection_list)}")

    if title:
        sections.append(f'Use exactly this title for the post: "{title}"')

    sections.append("""Requirements:
- Write a compelling title
- Include an engaging introduction
- Use subheadings to structure the content
- Include actionable tips or insights
- End with a strong conclusion
- Make it SEO-friendly with natural keyword usage

Format the response as:
TITLE: [Your title here]
CONTENT: [Your full blog post content here]""")

    return "\n\n".join(sections)


def build_keyword_prompt(topic: str, body: str) -> str:
    excerpt = (body or "")[:settings.KEYWORD_CONTEXT_LENGTH]
    return (f"{KEYWORD_ROLE}\n\nTopic: {topic}\n\nContent: {excerpt}...\n\n"
            f"Generate 5-8 relevant SEO keywords as a JSON array.")


def build_image_prompt(topic: str, title: str) -> str:
    return (f'A professional, high-quality image related to "{topic}". {title}. '
            f'Clean, modern style, suitable for a blog post header. No text overlay.')


# =============================================================================
# Response parsing
# =============================================================================

def clean_title(text: str) -> str:
    """Strip enumeration, heading, bold markers and surrounding quotes from a title line."""
    title = text.strip().replace('**', '').replace('__', '')
    title = ENUMERATION_PATTERN.sub('', title)
    title = re.sub(r'^#{1,6}\s*', '', title).strip()
    return title.strip(QUOTE_CHARS).strip()


def parse_titles(response_text: str, count: int) -> List[str]:
    """
    Parse a numbered list of titles.

    Entries of MIN_TITLE_LENGTH characters or fewer are discarded and at most
    ``count`` titles are returned.
    """
    titles = []
    for line in (response_text or "").splitlines():
        if not line.strip():
            continue
        title = clean_title(line)
        if len(title) > settings.MIN_TITLE_LENGTH:
            titles.append(title)
        if len(titles) >= count:
            break
    return titles


def synthetic_title(body: str) -> str:
    """A title made from the first characters of the body's plain text."""
    plain = re.sub(r'\s+', ' ', strip_markdown(strip_html_tags(body or ""))).strip()
    return truncate_text(plain, settings.SYNTHETIC_TITLE_LENGTH, add_ellipsis=False) or "Untitled Post"


def parse_generated_content(response_text: str, approved_title: Optional[str] = None) -> Tuple[str, str]:
    """
    Split a TITLE:/CONTENT: response into title and body.

    Without a CONTENT: delimiter the whole response is the body. A supplied
    approved title always wins over the parsed one.

    Returns:
        Tuple[str, str]: (title, body)
    """
    text = (response_text or "").strip()
    content_match = CONTENT_LABEL.search(text)

    if content_match:
        body = content_match.group(1).strip()
        title_match = TITLE_LABEL.search(text[:content_match.start()])
        parsed_title = clean_title(title_match.group(1)) if title_match else ""
    else:
        body = text
        parsed_title = ""

    if approved_title:
        title = approved_title
    else:
        title = parsed_title or synthetic_title(body)
    return title, body


def parse_keywords(response_text: str) -> List[str]:
    """Parse a JSON array of keywords, falling back to one keyword per line."""
    text = (response_text or "").strip()
    text = re.sub(r'^```(?:json)?\s*|\s*```$', '', text)

    try:
        decoded = json.loads(text)
        candidates = decoded if isinstance(decoded, list) else []
    except ValueError:
        candidates = [ENUMERATION_PATTERN.sub('', line) for line in text.splitlines()]

    keywords = []
    for candidate in candidates:
        keyword = str(candidate).strip().strip(QUOTE_CHARS).strip()
        if keyword and keyword not in keywords:
            keywords.append(keyword)
    return keywords[:settings.MAX_KEYWORDS]


def fallback_keywords(topic: str) -> List[str]:
    return [(topic or "").lower()] + list(settings.FALLBACK_KEYWORD_TAGS)


# =============================================================================
# Provider client
# =============================================================================

class ContentGenerator:
    """Generates titles, posts, keywords and featured images for campaigns."""

    def __init__(self, api_key: Optional[str] = None, image_api_key: Optional[str] = None,
                 model: Any = None, image_client: Any = None, rng: Optional[random.Random] = None):
        """
        Initialize the content generator.

        Missing credentials do not raise here: text calls raise
        ProviderNotConfigured and image generation is skipped.

        Args:
            api_key: Gemini API key, defaults to settings.GOOGLE_AI_API_KEY
            image_api_key: OpenAI API key, defaults to settings.OPENAI_API_KEY
            model: Pre-built text model (tests)
            image_client: Pre-built OpenAI client (tests)
            rng: Random source for content type selection
        """
        self.rng = rng or random.Random()
        self.model = model
        self.image_client = image_client

        api_key = api_key if api_key is not None else settings.GOOGLE_AI_API_KEY
        if self.model is None:
            if api_key:
                genai.configure(api_key=api_key)
                self.model = genai.GenerativeModel(model_name=settings.TEXT_MODEL)
                logger.info(f"Text generation model: {settings.TEXT_MODEL}")
            else:
                logger.warning("Gemini API key not configured. Content generation is disabled.")

        image_api_key = image_api_key if image_api_key is not None else settings.OPENAI_API_KEY
        if self.image_client is None:
            if image_api_key:
                self.image_client = OpenAI(api_key=image_api_key, timeout=settings.IMAGE_TIMEOUT_SECONDS)
            else:
                logger.warning("OpenAI API key not configured. Featured images are disabled.")

    @property
    def is_configured(self) -> bool:
        return self.model is not None

    def _generate(self, prompt: str, max_tokens: int, temperature: float) -> str:
        """
        Run one text generation request.

        Raises:
            ProviderNotConfigured: No API key configured
            QuotaExceeded: The provider rejected the request for quota or billing reasons
            ProviderError: Any other failure, including timeouts and blocked or empty responses
        """
        if self.model is None:
            raise ProviderNotConfigured("Text generation provider is not configured (GOOGLE_AI_API_KEY missing)")

        try:
            response = self.model.generate_content(
                prompt,
                generation_config={"max_output_tokens": max_tokens, "temperature": temperature},
                request_options={"timeout": settings.GENERATION_TIMEOUT_SECONDS},
            )
        except google_exceptions.ResourceExhausted as e:
            raise QuotaExceeded(f"Text generation quota exceeded: {e}") from e
        except google_exceptions.DeadlineExceeded as e:
            raise ProviderError(f"Text generation timed out: {e}") from e
        except Exception as e:
            raise ProviderError(f"Text generation failed: {e}") from e

        try:
            text = response.text
        except (ValueError, AttributeError, IndexError) as e:
            raise ProviderError(f"Text generation returned no usable text: {e}") from e

        if not text or not text.strip():
            raise ProviderError("Text generation returned an empty response")
        return text

    def generate_titles(self, campaign: Campaign, count: int = settings.DEFAULT_TITLE_COUNT) -> List[str]:
        """
        Generate candidate titles for a campaign.

        Args:
            campaign: The campaign
            count: Maximum number of titles

        Returns:
            List[str]: Parsed titles (may be fewer than count)
        """
        logger.info(f"Generating {count} titles for campaign {campaign.id}: {campaign.topic}")
        response_text = self._generate(build_title_prompt(campaign, count),
                                       settings.TITLE_MAX_TOKENS, settings.TITLE_TEMPERATURE)
        titles = parse_titles(response_text, count)
        if not titles:
            logger.warning(f"No usable titles in response for campaign {campaign.id}")
        logger.info(f"Generated {len(titles)} titles for campaign {campaign.id}")
        return titles

    def generate_content(self, campaign: Campaign, options: Optional[Dict[str, Any]] = None) -> GeneratedContent:
        """
        Generate a post for a campaign.

        Args:
            campaign: The campaign
            options: Optional overrides: "content_type" forces a template and
                "title" is an approved title the post must use

        Returns:
            GeneratedContent: Title, body, keywords, content type and image prompt

        Raises:
            ProviderNotConfigured, QuotaExceeded, ProviderError
            ValueError: If a forced content type is unknown
        """
        options = options or {}
        content_type = options.get("content_type") or content_types.pick_content_type(campaign.content_types, self.rng)
        if content_types.get_template(content_type) is None:
            raise ValueError(f"Unknown content type: {content_type}")

        approved_title = options.get("title")
        logger.info(f"Generating {content_type} content for campaign {campaign.id}: {campaign.topic}")

        prompt = build_content_prompt(campaign, content_type, approved_title)
        response_text = self._generate(prompt, settings.CONTENT_MAX_TOKENS, settings.CONTENT_TEMPERATURE)

        title, body = parse_generated_content(response_text, approved_title)
        if not body:
            raise ProviderError("Text generation returned an empty post body")

        keywords = self.generate_keywords(campaign.topic, body)

        logger.info(f"Generated '{title[:50]}' ({len(body.split())} words) for campaign {campaign.id}")
        return GeneratedContent(
            title=title,
            body=body,
            keywords=keywords,
            content_type=content_type,
            image_prompt=build_image_prompt(campaign.topic, title),
        )

    def generate_keywords(self, topic: str, body: str) -> List[str]:
        """
        Generate SEO keywords for a post. Never raises.

        Returns:
            List[str]: Keywords, or the fallback set when generation fails
        """
        try:
            response_text = self._generate(build_keyword_prompt(topic, body),
                                           settings.KEYWORD_MAX_TOKENS, settings.KEYWORD_TEMPERATURE)
            keywords = parse_keywords(response_text)
            if keywords:
                return keywords
            logger.warning("Keyword response was empty, using fallback keywords")
        except Exception as e:
            logger.warning(f"Keyword generation failed, using fallback keywords: {e}")
        return fallback_keywords(topic)

    def generate_image(self, image_prompt: Optional[str]) -> Optional[str]:
        """
        Generate a featured image. Never raises.

        Returns:
            Optional[str]: URL of the generated image, or None
        """
        if self.image_client is None or not image_prompt:
            logger.info("Skipping featured image generation")
            return None

        try:
            logger.info(f"Generating featured image with {settings.IMAGE_MODEL}")
            response = self.image_client.images.generate(
                model=settings.IMAGE_MODEL,
                prompt=image_prompt,
                size=settings.IMAGE_SIZE,
                quality=settings.IMAGE_QUALITY,
                n=1,
            )
            image_url = response.data[0].url
            if not image_url:
                logger.warning("Image generation returned no URL")
                return None
            logger.info("Featured image generated successfully")
            return image_url
        except Exception as e:
            logger.error(f"Image generation failed: {e}")
            return None
