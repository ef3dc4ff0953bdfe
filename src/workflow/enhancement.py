"""Pure SEO, interlinking and readiness helpers used by the later workflow phases."""

from __future__ import annotations

from collections import Counter
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence


SLUG_MAX_LENGTH = 60
SEO_TITLE_MAX_LENGTH = 60
META_DESCRIPTION_MAX_LENGTH = 160
TOP_TOPIC_COUNT = 5

REQUIRED_FIELDS = ("title", "content", "slug")
RECOMMENDED_FIELDS = ("seo_title", "meta_description", "excerpt", "featured_image")
OPTIONAL_FIELDS = ("thumbnail_image", "keywords")

CONTENT_SCORE_WEIGHTS: Dict[str, float] = {
    "readability": 0.20,
    "seo": 0.30,
    "quality": 0.25,
    "interlinking": 0.15,
    "images": 0.10,
}
DEFAULT_COMPONENT_SCORE = 50.0
READY_SCORE_THRESHOLD = 60.0
INTERLINKING_TARGET_LINKS = 8

_TAG_RE = re.compile(r"<[^>]+>")
_WORD_RE = re.compile(r"[a-z0-9]+")
_STOPWORDS = frozenset(
    {
        "about",
        "after",
        "also",
        "been",
        "before",
        "being",
        "between",
        "could",
        "does",
        "from",
        "have",
        "into",
        "just",
        "more",
        "most",
        "other",
        "over",
        "should",
        "some",
        "such",
        "than",
        "that",
        "their",
        "them",
        "then",
        "there",
        "these",
        "they",
        "this",
        "those",
        "very",
        "were",
        "what",
        "when",
        "where",
        "which",
        "while",
        "with",
        "will",
        "would",
        "your",
    }
)


def strip_markup(text: str) -> str:
    return " ".join(_TAG_RE.sub(" ", text or "").split())


def slugify(value: str, *, max_length: int = SLUG_MAX_LENGTH) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (value or "").lower()).strip("-")
    if len(slug) > max_length:
        slug = slug[:max_length].rstrip("-")
    return slug or "post"


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    cut = text[: limit - 3].rsplit(" ", 1)[0].rstrip(" ,.;:")
    return f"{cut}..."


def build_seo_title(title: str, keywords: Sequence[str]) -> str:
    base = " ".join((title or "").split())
    primary = keywords[0].strip() if keywords else ""
    if primary and primary.lower() not in base.lower():
        suffixed = f"{base} | {primary}"
        if len(suffixed) <= SEO_TITLE_MAX_LENGTH:
            return suffixed
    return _truncate(base, SEO_TITLE_MAX_LENGTH)


def build_meta_description(excerpt: Optional[str], content: str, keywords: Sequence[str]) -> str:
    source = strip_markup(excerpt or "") or strip_markup(content)
    if not source:
        primary = keywords[0] if keywords else "this topic"
        return f"Learn about {primary} in our comprehensive guide."
    return _truncate(source, META_DESCRIPTION_MAX_LENGTH)


def build_structured_data(
    *,
    title: str,
    description: str,
    keywords: Sequence[str],
    image_url: Optional[str] = None,
    author: Optional[str] = None,
) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "@context": "https://schema.org",
        "@type": "Article",
        "headline": title,
        "description": description,
        "keywords": ", ".join(keywords),
    }
    if image_url:
        data["image"] = image_url
    if author:
        data["author"] = {"@type": "Organization", "name": author}
    return data


def extract_topics(text: str, *, limit: int = TOP_TOPIC_COUNT) -> List[str]:
    """Most frequent words longer than three characters, stopwords excluded."""

    words = [
        word
        for word in _WORD_RE.findall(strip_markup(text).lower())
        if len(word) > 3 and word not in _STOPWORDS and not word.isdigit()
    ]
    counts = Counter(words)
    # Ties keep first-seen order.
    ranked = sorted(counts.items(), key=lambda item: (-item[1], words.index(item[0])))
    return [word for word, _ in ranked[:limit]]


def propose_internal_links(
    topics: Sequence[str],
    candidates: Iterable[Mapping[str, Any]],
    *,
    max_links: int,
) -> List[Dict[str, Any]]:
    """Rank candidate posts by how many topics their title shares.

    Each candidate carries ``id``, ``title`` and ``slug``.
    """

    topic_set = {topic.lower() for topic in topics}
    scored: List[tuple[int, str, Dict[str, Any]]] = []
    for candidate in candidates:
        title = str(candidate.get("title") or "")
        title_words = set(_WORD_RE.findall(title.lower()))
        shared = sorted(topic_set & title_words)
        if not shared:
            continue
        scored.append(
            (
                len(shared),
                title,
                {
                    "post_id": candidate.get("id"),
                    "title": title,
                    "slug": candidate.get("slug"),
                    "anchor_text": shared[0],
                    "shared_topics": shared,
                },
            )
        )
    scored.sort(key=lambda entry: (-entry[0], entry[1]))
    return [entry[2] for entry in scored[: max(0, max_links)]]


def validate_field_mapping(fields: Mapping[str, Any]) -> Dict[str, Any]:
    def present(name: str) -> bool:
        value = fields.get(name)
        if isinstance(value, (list, tuple, dict)):
            return bool(value)
        return value is not None and str(value).strip() != ""

    missing_required = [name for name in REQUIRED_FIELDS if not present(name)]
    missing_recommended = [name for name in RECOMMENDED_FIELDS if not present(name)]
    missing_optional = [name for name in OPTIONAL_FIELDS if not present(name)]
    return {
        "valid": not missing_required,
        "missing_required": missing_required,
        "missing_recommended": missing_recommended,
        "missing_optional": missing_optional,
    }


def interlinking_score(link_count: int) -> float:
    return min(100.0, link_count / INTERLINKING_TARGET_LINKS * 100.0)


def calculate_content_score(components: Mapping[str, Optional[float]]) -> float:
    total = 0.0
    for name, weight in CONTENT_SCORE_WEIGHTS.items():
        value = components.get(name)
        score = DEFAULT_COMPONENT_SCORE if value is None else max(0.0, min(100.0, float(value)))
        total += score * weight
    return round(total, 2)


def assess_readiness(field_validation: Mapping[str, Any], content_score: float) -> Dict[str, Any]:
    issues = [f"Missing required field: {name}" for name in field_validation.get("missing_required", [])]
    warnings = [f"Missing recommended field: {name}" for name in field_validation.get("missing_recommended", [])]
    suggestions: List[str] = []
    if content_score < READY_SCORE_THRESHOLD:
        warnings.append(f"Content score {content_score} is below {READY_SCORE_THRESHOLD}")
        suggestions.append("Review readability and SEO recommendations before publishing")
    if "featured_image" in field_validation.get("missing_recommended", []):
        suggestions.append("Add a featured image")
    if "meta_description" in field_validation.get("missing_recommended", []):
        suggestions.append("Write a meta description of at most 160 characters")
    return {
        "is_ready": not issues,
        "issues": issues,
        "warnings": warnings,
        "suggestions": suggestions,
    }


def seo_recommendations(*, title: str, meta_description: str, keywords: Sequence[str], content: str) -> List[str]:
    recommendations: List[str] = []
    lowered_content = strip_markup(content).lower()
    if keywords and keywords[0].lower() not in title.lower():
        recommendations.append("Include the primary keyword in the title")
    if len(meta_description) < 70:
        recommendations.append("Lengthen the meta description")
    for keyword in keywords:
        if keyword.lower() not in lowered_content:
            recommendations.append(f"Mention keyword in body: {keyword}")
    if "<h2" not in (content or "").lower() and "\n## " not in (content or ""):
        recommendations.append("Add section headings")
    return recommendations
