from src.workflow import enhancement


def test_slugify() -> None:
    assert enhancement.slugify("Hello, World! 2026 Edition") == "hello-world-2026-edition"
    assert enhancement.slugify("!!!") == "post"
    long_slug = enhancement.slugify("word " * 40)
    assert len(long_slug) <= enhancement.SLUG_MAX_LENGTH
    assert not long_slug.endswith("-")


def test_seo_title_appends_primary_keyword_when_missing() -> None:
    assert enhancement.build_seo_title("Scaling Outreach", ["cold email"]) == "Scaling Outreach | cold email"
    assert enhancement.build_seo_title("Cold Email Basics", ["cold email"]) == "Cold Email Basics"
    long_title = enhancement.build_seo_title("A " + "very long title " * 10, ["keyword"])
    assert len(long_title) <= enhancement.SEO_TITLE_MAX_LENGTH
    assert long_title.endswith("...")


def test_meta_description_prefers_excerpt_and_falls_back() -> None:
    assert enhancement.build_meta_description("Short <b>excerpt</b>.", "<p>Body</p>", []) == "Short excerpt ."
    assert enhancement.build_meta_description("", "<p>Body text</p>", []) == "Body text"
    assert enhancement.build_meta_description(None, "", ["seo"]) == "Learn about seo in our comprehensive guide."
    assert len(enhancement.build_meta_description("", "word " * 100, [])) <= enhancement.META_DESCRIPTION_MAX_LENGTH


def test_structured_data_includes_optional_fields() -> None:
    data = enhancement.build_structured_data(
        title="Title",
        description="Description",
        keywords=["a", "b"],
        image_url="https://img.example.com/x.png",
        author="Acme",
    )
    assert data["@type"] == "Article"
    assert data["keywords"] == "a, b"
    assert data["image"] == "https://img.example.com/x.png"
    assert data["author"] == {"@type": "Organization", "name": "Acme"}
    assert "image" not in enhancement.build_structured_data(title="t", description="d", keywords=[])


def test_extract_topics_ranks_by_frequency() -> None:
    text = "<p>Marketing automation helps marketing teams. Automation with marketing tools. This that 2026.</p>"
    topics = enhancement.extract_topics(text)
    assert topics[:2] == ["marketing", "automation"]
    assert "this" not in topics
    assert "2026" not in topics


def test_propose_internal_links_ranks_shared_topics() -> None:
    candidates = [
        {"id": "p1", "title": "Marketing basics", "slug": "marketing-basics"},
        {"id": "p2", "title": "Marketing automation playbook", "slug": "automation-playbook"},
        {"id": "p3", "title": "Unrelated gardening", "slug": "gardening"},
    ]
    links = enhancement.propose_internal_links(["marketing", "automation"], candidates, max_links=5)

    assert [link["post_id"] for link in links] == ["p2", "p1"]
    assert links[0]["shared_topics"] == ["automation", "marketing"]
    assert enhancement.propose_internal_links(["marketing"], candidates, max_links=0) == []


def test_field_validation_and_readiness() -> None:
    validation = enhancement.validate_field_mapping({"title": "T", "content": "C", "slug": "", "keywords": []})
    assert validation["valid"] is False
    assert validation["missing_required"] == ["slug"]
    assert "keywords" in validation["missing_optional"]

    readiness = enhancement.assess_readiness(validation, 40.0)
    assert readiness["is_ready"] is False
    assert readiness["issues"] == ["Missing required field: slug"]
    assert any("below" in warning for warning in readiness["warnings"])
    assert "Add a featured image" in readiness["suggestions"]


def test_content_score_uses_defaults_and_clamps() -> None:
    assert enhancement.calculate_content_score({}) == 50.0
    assert enhancement.calculate_content_score(
        {"readability": 100, "seo": 100, "quality": 100, "interlinking": 100, "images": 100}
    ) == 100.0
    assert enhancement.calculate_content_score({"seo": 500}) == 65.0
    assert enhancement.interlinking_score(4) == 50.0
    assert enhancement.interlinking_score(20) == 100.0


def test_seo_recommendations() -> None:
    recommendations = enhancement.seo_recommendations(
        title="Growth tips",
        meta_description="short",
        keywords=["pipeline", "growth"],
        content="<p>Growth matters.</p>",
    )
    assert "Include the primary keyword in the title" in recommendations
    assert "Lengthen the meta description" in recommendations
    assert "Mention keyword in body: pipeline" in recommendations
    assert "Add section headings" in recommendations
