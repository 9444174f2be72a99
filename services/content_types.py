"""
Content Type Templates

The catalog of post formats a campaign can rotate through. Each template is a
prompt with [VARIABLE] placeholders that are filled from the campaign's own
variables, falling back to defaults derived from the campaign.
"""

import random
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from data.models import Campaign
from utils.logger import get_logger

logger = get_logger(__name__)

PLACEHOLDER_PATTERN = re.compile(r'\[([A-Z][A-Z_]*)\]')


@dataclass(frozen=True)
class ContentTypeTemplate:
    key: str
    name: str
    description: str
    prompt: str

    @property
    def variables(self) -> Tuple[str, ...]:
        seen = []
        for name in PLACEHOLDER_PATTERN.findall(self.prompt):
            if name not in seen:
                seen.append(name)
        return tuple(seen)


TEMPLATES: Dict[str, ContentTypeTemplate] = {t.key: t for t in [
    ContentTypeTemplate(
        "how_to_guide", "How-To Guide", "Step-by-step instructional content",
        "You are an expert SEO content writer. Write a detailed how-to guide on [TOPIC]. "
        "Audience: [AUDIENCE]. Primary keyword: [KEYWORD]. Structure the blog with step-by-step "
        "instructions, numbered lists, practical examples, and a summary checklist at the end. "
        "Include a clear introduction, detailed sections, and a conclusion with a CTA: [CTA]. "
        "Add 3-5 FAQ questions with short answers. Target length: [WORD_COUNT]. Tone: [TONE]."),
    ContentTypeTemplate(
        "listicle", "Listicle", "Top X style posts with numbered lists",
        "Write a [NUMBER]-point listicle blog post about [TOPIC]. Audience: [AUDIENCE]. "
        "Primary keyword: [KEYWORD]. Each point should have a heading, explanation, and example. "
        "Use bullet points and tables where relevant. Add an engaging introduction, a key takeaways "
        "section at the end, and FAQs. Tone: [TONE]. Target length: [WORD_COUNT]."),
    ContentTypeTemplate(
        "comparison_post", "Comparison Post", "Compare products, services, or strategies",
        "Write a comparison blog post on [PRODUCT_A] vs [PRODUCT_B]. Audience: [AUDIENCE]. "
        "Primary keyword: [KEYWORD]. Include pros, cons, pricing, features, and a side-by-side "
        "comparison table. Add a conclusion with a recommendation and CTA: [CTA]. Include FAQs (3-5). "
        "Tone: [TONE]. Target length: [WORD_COUNT]."),
    ContentTypeTemplate(
        "review_post", "Review Post", "Detailed reviews of tools, products, or services",
        "Write a detailed review blog post about [PRODUCT_SERVICE]. Audience: [AUDIENCE]. "
        "Primary keyword: [KEYWORD]. Cover introduction, features, benefits, pricing, pros and cons, "
        "who it's best for, and alternatives. Include bullet lists and tables for clarity. Add FAQs "
        "and a final verdict with a CTA: [CTA]. Tone: [TONE]. Target length: [WORD_COUNT]."),
    ContentTypeTemplate(
        "ultimate_guide", "Ultimate Guide", "Comprehensive coverage of a topic",
        "You are an expert SEO content writer. Write an ultimate guide blog post on [TOPIC]. "
        "Audience: [AUDIENCE]. Primary keyword: [KEYWORD]. Cover definitions, benefits, strategies, "
        "tools, mistakes to avoid, and future trends. Use H2/H3 subheadings, bullet lists, tables, "
        "and examples. Add FAQs and a strong CTA at the end: [CTA]. Tone: [TONE]. "
        "Target length: [WORD_COUNT]."),
    ContentTypeTemplate(
        "case_study", "Case Study/Storytelling", "Real examples and success stories",
        "Write a storytelling blog post in the format of a case study about [TOPIC_CLIENT_BRAND]. "
        "Audience: [AUDIENCE]. Primary keyword: [KEYWORD]. Structure as: Background, Challenges, "
        "Solutions, Results, Key Lessons. Use narrative tone with data, quotes, or examples. "
        "Add FAQs at the end. CTA: [CTA]. Target length: [WORD_COUNT]."),
    ContentTypeTemplate(
        "problem_solution", "Problem-Solution Post", "Address pain points with solutions",
        "Write a problem-solution blog post about [TOPIC]. Audience: [AUDIENCE]. Primary keyword: "
        "[KEYWORD]. Start with the pain point, describe why it's a problem, then present a solution "
        "step-by-step. Use bullet points and real-world examples. Add FAQs and a persuasive conclusion "
        "with CTA: [CTA]. Tone: [TONE]. Target length: [WORD_COUNT]."),
    ContentTypeTemplate(
        "trending_topic", "Trending Topic/News Analysis", "Fresh, timely content on current events",
        "Write a trending topic blog post analyzing [LATEST_TREND_EVENT]. Audience: [AUDIENCE]. "
        "Primary keyword: [KEYWORD]. Provide background, implications, expert opinions, and action "
        "steps. Structure with subheadings and bullet lists. Add a conclusion with CTA: [CTA]. "
        "FAQs optional. Tone: [TONE]. Target length: [WORD_COUNT]."),
    ContentTypeTemplate(
        "thought_leadership", "Thought Leadership Post", "Position yourself as an expert authority",
        "Write a thought leadership blog post sharing insights on [TOPIC]. Audience: [AUDIENCE]. "
        "Primary keyword: [KEYWORD]. Use authoritative but approachable tone. Include personal "
        "insights, industry trends, expert references, and forward-looking predictions. Structure "
        "with H2/H3s. Add FAQs. Conclusion with CTA: [CTA]. Target length: [WORD_COUNT]."),
    ContentTypeTemplate(
        "beginners_guide", "Beginner's Guide", "Educational content for entry-level readers",
        "Write a beginner's guide blog post on [TOPIC]. Audience: [BEGINNERS_NEWBIES]. Primary "
        "keyword: [KEYWORD]. Break concepts into simple steps, use analogies, bullet points, and "
        "examples. Add a glossary of key terms and FAQs. End with a conclusion and CTA: [CTA]. "
        "Tone: friendly and educational. Target length: [WORD_COUNT]."),
    ContentTypeTemplate(
        "advanced_guide", "Advanced/Expert Guide", "Deep content for experienced audiences",
        "Write an advanced blog post on [TOPIC] for experienced [AUDIENCE]. Primary keyword: "
        "[KEYWORD]. Cover deep strategies, expert techniques, and advanced tools. Use industry "
        "terminology, data, and case examples. Add FAQs. End with a CTA: [CTA]. Tone: authoritative "
        "and professional. Target length: [WORD_COUNT]."),
    ContentTypeTemplate(
        "faq_post", "FAQ Post", "Answer common questions for voice/AI searches",
        "Write a FAQ-style blog post about [TOPIC]. Audience: [AUDIENCE]. Primary keyword: "
        "[KEYWORD]. Create 10-15 common questions with detailed answers. Format with H2 for each "
        "question and schema-friendly answers. Add a conclusion with CTA: [CTA]. Tone: [TONE]. "
        "Target length: [WORD_COUNT]."),
    ContentTypeTemplate(
        "checklist_template", "Checklist/Template Post", "Actionable, practical step-by-step content",
        "Write a checklist-style blog post on [TOPIC]. Audience: [AUDIENCE]. Primary keyword: "
        "[KEYWORD]. Provide a step-by-step checklist with tick-box style bullet points. Add a "
        "downloadable version CTA: [CTA]. Include FAQs and key takeaways. Tone: [TONE]. "
        "Target length: [WORD_COUNT]."),
    ContentTypeTemplate(
        "opinion_editorial", "Opinion/Editorial Post", "Express strong viewpoints and opinions",
        "Write an editorial opinion blog post about [TOPIC]. Audience: [AUDIENCE]. Primary keyword: "
        "[KEYWORD]. Share a clear stance, provide arguments for and against, and back with "
        "examples/data. Add FAQs. Conclusion should reinforce your position and CTA: [CTA]. "
        "Tone: persuasive and authoritative. Target length: [WORD_COUNT]."),
    ContentTypeTemplate(
        "resource_roundup", "Resource Roundup Post", "Curate tools, tips, or external resources",
        "Write a resource roundup blog post listing the best [TOOLS_RESOURCES_BOOKS] for [TOPIC]. "
        "Audience: [AUDIENCE]. Primary keyword: [KEYWORD]. Include a short intro for each resource, "
        "pros/cons, and links. Use a comparison table if relevant. Add FAQs and CTA: [CTA]. "
        "Tone: [TONE]. Target length: [WORD_COUNT]."),
]}


def normalize_variable_name(name: str) -> str:
    """'wordCount', 'word_count' and 'WORD_COUNT' all become 'WORD_COUNT'."""
    name = re.sub(r'(?<=[a-z0-9])([A-Z])', r'_\1', name.strip())
    return re.sub(r'[^A-Za-z0-9]+', '_', name).strip('_').upper()


def get_template(key: str) -> Optional[ContentTypeTemplate]:
    return TEMPLATES.get(key)


def get_smart_defaults(campaign: Campaign) -> Dict[str, str]:
    """Default variable values derived from the campaign."""
    return {
        "TOPIC": campaign.topic or "the topic",
        "AUDIENCE": campaign.context or "general audience",
        "KEYWORD": campaign.topic or "main keyword",
        "TONE": campaign.tone_of_voice.value if campaign.tone_of_voice else "conversational",
        "WORD_COUNT": "1500-2000",
        "CTA": "Learn more about our services",
        "NUMBER": "10",
        "PRODUCT_A": "Product A",
        "PRODUCT_B": "Product B",
        "PRODUCT_SERVICE": "the product/service",
        "TOPIC_CLIENT_BRAND": campaign.topic or "the topic",
        "LATEST_TREND_EVENT": "the latest trend",
        "BEGINNERS_NEWBIES": "beginners",
        "TOOLS_RESOURCES_BOOKS": "tools and resources",
    }


def build_prompt(key: str, campaign: Campaign) -> str:
    """
    Fill a content type template for a campaign.

    Campaign variables override the smart defaults; blank campaign values are
    ignored. Placeholders with no value at all are left in place.

    Args:
        key: Content type key
        campaign: The campaign supplying variables and defaults

    Returns:
        str: The filled template prompt

    Raises:
        ValueError: If the content type is unknown
    """
    template = get_template(key)
    if template is None:
        raise ValueError(f"Unknown content type: {key}")

    values = get_smart_defaults(campaign)
    for name, value in campaign.content_type_variables.items():
        if value and str(value).strip():
            values[normalize_variable_name(name)] = str(value).strip()

    return PLACEHOLDER_PATTERN.sub(lambda m: values.get(m.group(1), m.group(0)), template.prompt)


def valid_selection(types: List[str]) -> List[str]:
    """The known content types from a selection, in order, without duplicates."""
    selected = []
    for key in types or []:
        if key in TEMPLATES and key not in selected:
            selected.append(key)
        elif key not in TEMPLATES:
            logger.debug(f"Ignoring unknown content type '{key}'")
    return selected


def pick_content_type(types: List[str], rng: Optional[random.Random] = None) -> str:
    """
    Choose a content type uniformly at random from the selection.

    An empty selection (or one with no known types) means every type.
    """
    choices = valid_selection(types) or list(TEMPLATES)
    return (rng or random).choice(choices)
