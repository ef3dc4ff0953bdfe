from datetime import datetime, timedelta, timezone
import json

import pytest

from src.core.errors import Forbidden, InvalidTransition
from src.publishing.service import (
    build_platform_post,
    execute_publishing,
    list_publishing_records,
    retry_platform,
    schedule_publishing,
    sync_item_status,
)
from src.queue.service import create_queue_item, get_queue_item, merge_generation_metadata, transition_status
from tests.conftest import FakePlatformPublisher


def _approved_item(session, org):
    item = create_queue_item(session, org_id=org.org_id, created_by=org.member_id, topic="Ship it")
    for status, fields in (
        ("generating", None),
        ("generated", {"generated_title": "Ship It", "generated_content": "<p>Body</p>"}),
        ("in_review", None),
        ("approved", None),
    ):
        transition_status(session, item, status, fields=fields)
    return item


def _factory(*, failing=()):
    publishers = {}

    def factory(platform):
        if platform not in publishers:
            publishers[platform] = FakePlatformPublisher(platform=platform, fail=platform in failing)
        return publishers[platform]

    factory.publishers = publishers
    return factory


def _by_platform(records):
    return {record.platform: record for record in records}


def test_partial_failure_keeps_item_publishing(session, org) -> None:
    item = _approved_item(session, org)
    schedule_publishing(
        session,
        org_id=org.org_id,
        queue_id=item.id,
        platforms=["wordpress", "webflow"],
        actor_id=org.editor_id,
        actor_role="editor",
    )

    result = execute_publishing(
        session,
        org_id=org.org_id,
        queue_id=item.id,
        actor_id=org.editor_id,
        actor_role="editor",
        publisher_factory=_factory(failing={"webflow"}),
    )

    assert result.published == 1
    assert result.failed == 1
    assert result.aggregate_status == "publishing"
    assert result.item_status == "publishing"
    records = _by_platform(result.records)
    assert records["wordpress"].status == "published"
    assert records["wordpress"].platform_url == f"https://wordpress.test/{item.id}"
    assert json.loads(records["wordpress"].publish_metadata_json) == {"provider_payload": {"ok": True}}
    assert records["webflow"].status == "failed"
    assert "webflow_webhook_failed" in records["webflow"].error
    assert records["webflow"].retry_count == 1


def test_retry_failed_platform_then_publish(session, org) -> None:
    item = _approved_item(session, org)
    schedule_publishing(
        session,
        org_id=org.org_id,
        queue_id=item.id,
        platforms=["wordpress", "webflow"],
        actor_id=org.editor_id,
        actor_role="editor",
    )
    execute_publishing(
        session,
        org_id=org.org_id,
        queue_id=item.id,
        actor_id=org.editor_id,
        actor_role="editor",
        publisher_factory=_factory(failing={"webflow"}),
    )
    failed = _by_platform(list_publishing_records(session, org_id=org.org_id, queue_id=item.id))["webflow"]

    retried = retry_platform(session, org_id=org.org_id, record_id=failed.id, actor_id=org.owner_id, actor_role="owner")
    assert retried.status == "publishing"
    assert retried.error is None

    factory = _factory()
    result = execute_publishing(
        session,
        org_id=org.org_id,
        queue_id=item.id,
        actor_id=org.owner_id,
        actor_role="owner",
        publisher_factory=factory,
    )

    assert result.published == 1
    assert list(factory.publishers) == ["webflow"]
    assert result.aggregate_status == "published"
    assert result.item_status == "published"
    assert get_queue_item(session, org_id=org.org_id, queue_id=item.id).status == "published"

    with pytest.raises(InvalidTransition):
        retry_platform(session, org_id=org.org_id, record_id=failed.id, actor_id=org.owner_id, actor_role="owner")


def test_future_schedule_waits_until_due(session, org) -> None:
    item = _approved_item(session, org)
    due_at = datetime.now(timezone.utc) + timedelta(hours=2)

    records = schedule_publishing(
        session,
        org_id=org.org_id,
        queue_id=item.id,
        platforms=["shopify"],
        actor_id=org.editor_id,
        actor_role="editor",
        scheduled_at=due_at,
    )
    assert [record.status for record in records] == ["scheduled"]
    assert get_queue_item(session, org_id=org.org_id, queue_id=item.id).status == "scheduled"

    factory = _factory()
    early = execute_publishing(
        session,
        org_id=org.org_id,
        queue_id=item.id,
        actor_id=org.editor_id,
        actor_role="editor",
        publisher_factory=factory,
    )
    assert early.published == 0
    assert early.item_status == "scheduled"
    assert factory.publishers == {}

    late = execute_publishing(
        session,
        org_id=org.org_id,
        queue_id=item.id,
        actor_id=org.editor_id,
        actor_role="editor",
        now=due_at + timedelta(minutes=1),
        publisher_factory=factory,
    )
    assert late.published == 1
    assert late.item_status == "published"


def test_schedule_is_idempotent_per_platform(session, org) -> None:
    item = _approved_item(session, org)
    for _ in range(2):
        records = schedule_publishing(
            session,
            org_id=org.org_id,
            queue_id=item.id,
            platforms=["wordpress", "WordPress"],
            actor_id=org.editor_id,
            actor_role="editor",
        )
    assert [record.platform for record in records] == ["wordpress"]


def test_schedule_guards(session, org) -> None:
    item = create_queue_item(session, org_id=org.org_id, created_by=org.member_id, topic="Too early")

    with pytest.raises(Forbidden):
        schedule_publishing(
            session,
            org_id=org.org_id,
            queue_id=item.id,
            platforms=["wordpress"],
            actor_id=org.member_id,
            actor_role="member",
        )
    with pytest.raises(ValueError):
        schedule_publishing(
            session,
            org_id=org.org_id,
            queue_id=item.id,
            platforms=["myspace"],
            actor_id=org.editor_id,
            actor_role="editor",
        )
    with pytest.raises(ValueError):
        schedule_publishing(
            session,
            org_id=org.org_id,
            queue_id=item.id,
            platforms=[],
            actor_id=org.editor_id,
            actor_role="editor",
        )
    with pytest.raises(InvalidTransition):
        schedule_publishing(
            session,
            org_id=org.org_id,
            queue_id=item.id,
            platforms=["wordpress"],
            actor_id=org.editor_id,
            actor_role="editor",
        )
    assert list_publishing_records(session, org_id=org.org_id, queue_id=item.id) == []


def test_sync_never_moves_items_off_the_publishing_path(session, org) -> None:
    item = _approved_item(session, org)
    schedule_publishing(
        session,
        org_id=org.org_id,
        queue_id=item.id,
        platforms=["wordpress"],
        actor_id=org.editor_id,
        actor_role="editor",
    )
    transition_status(session, item, "cancelled")

    assert sync_item_status(session, item) == "publishing"
    assert get_queue_item(session, org_id=org.org_id, queue_id=item.id).status == "cancelled"
    with pytest.raises(InvalidTransition):
        execute_publishing(
            session,
            org_id=org.org_id,
            queue_id=item.id,
            actor_id=org.editor_id,
            actor_role="editor",
            publisher_factory=_factory(),
        )


def test_platform_post_uses_workflow_metadata(session, org) -> None:
    item = _approved_item(session, org)
    merge_generation_metadata(
        session,
        item,
        {
            "content": {"excerpt": "Short excerpt"},
            "enhancement": {"slug": "ship-it", "seo_title": "Ship It | Guide", "meta_description": "Desc"},
            "images": {"featured_image": {"url": "https://img.example.com/f.png"}, "thumbnail_image": None},
        },
    )

    post = build_platform_post(item)

    assert post.title == "Ship It"
    assert post.slug == "ship-it"
    assert post.excerpt == "Short excerpt"
    assert post.seo["seo_title"] == "Ship It | Guide"
    assert post.images == {"featured_image": "https://img.example.com/f.png", "thumbnail_image": None}
