import pytest

from src.core.errors import NotFound
from src.progress.channel import ProgressHub
from src.progress.reporter import ProgressReporter, build_timeline, clamp_progress
from src.queue.service import create_queue_item, get_queue_item


@pytest.mark.parametrize(
    ("value", "expected"),
    [(-5, 0), (0, 0), (42.4, 42), (99.6, 100), (150, 100), ("70", 70), ("abc", 0), (None, 0)],
)
def test_clamp_progress(value, expected) -> None:
    assert clamp_progress(value) == expected


def test_append_persists_event_and_updates_item(session, org) -> None:
    item = create_queue_item(session, org_id=org.org_id, created_by=org.member_id, topic="Email deliverability")
    hub = ProgressHub(buffer_size=10)
    reporter = ProgressReporter(session, org_id=org.org_id, hub=hub)

    first = reporter.append(item.id, {"stage": "content_generation", "progress_percentage": 150, "details": "x"})
    second = reporter.append(item.id, {"stage": "phase_1_content", "progress_percentage": -3})

    assert first["progress_percentage"] == 100
    assert first["sequence"] == 1
    assert first["details"] == "x"
    assert second["progress_percentage"] == 0
    assert second["sequence"] == 2

    stored = get_queue_item(session, org_id=org.org_id, queue_id=item.id)
    assert stored.current_stage == "phase_1_content"
    assert stored.progress_percentage == 0
    assert [event["stage"] for event in reporter.snapshot(item.id)] == ["content_generation", "phase_1_content"]


def test_append_requires_stage(session, org) -> None:
    item = create_queue_item(session, org_id=org.org_id, created_by=org.member_id, topic="Email deliverability")
    reporter = ProgressReporter(session, org_id=org.org_id, hub=ProgressHub(buffer_size=10))

    with pytest.raises(ValueError):
        reporter.append(item.id, {"progress_percentage": 10})


def test_subscribe_replays_snapshot_then_live_events(session, org) -> None:
    item = create_queue_item(session, org_id=org.org_id, created_by=org.member_id, topic="Email deliverability")
    hub = ProgressHub(buffer_size=10)
    reporter = ProgressReporter(session, org_id=org.org_id, hub=hub)
    reporter.append(item.id, {"stage": "phase_1_content", "progress_percentage": 20})

    subscription = reporter.subscribe(item.id)
    reporter.append(item.id, {"stage": "phase_2_images", "progress_percentage": 40})

    received = list(subscription.messages(timeout=0.05))
    assert [message.payload["stage"] for message in received] == ["phase_1_content", "phase_2_images"]
    subscription.close()
    assert hub.subscriber_count(item.id) == 0


def test_reporter_is_scoped_to_org(session, org) -> None:
    item = create_queue_item(session, org_id=org.org_id, created_by=org.member_id, topic="Email deliverability")
    hub = ProgressHub(buffer_size=10)
    reporter = ProgressReporter(session, org_id="other-org", hub=hub)

    with pytest.raises(NotFound):
        reporter.append(item.id, {"stage": "phase_1_content"})
    with pytest.raises(NotFound):
        reporter.subscribe(item.id)
    assert hub.subscriber_count(item.id) == 0


def test_build_timeline_classifies_stages() -> None:
    events = [
        {"stage": "phase_1_content", "progress_percentage": 20, "sequence": 1},
        {"stage": "Phase_2_Images", "progress_percentage": 40, "sequence": 2},
    ]
    timeline = build_timeline(
        events,
        "phase_2_images",
        stages=["phase_1_content", "phase_2_images", "phase_3_enhancement"],
    )

    assert [(entry["stage"].lower(), entry["state"]) for entry in timeline] == [
        ("phase_1_content", "completed"),
        ("phase_2_images", "in_progress"),
        ("phase_3_enhancement", "pending"),
    ]


def test_build_timeline_marks_finished_current_stage_completed() -> None:
    timeline = build_timeline([{"stage": "publishing", "progress_percentage": 100}], "publishing")
    assert timeline == [{"stage": "publishing", "progress_percentage": 100, "state": "completed"}]


def test_appends_from_two_sessions_are_all_kept(session_factory, org) -> None:
    first_session = session_factory()
    second_session = session_factory()
    try:
        item = create_queue_item(first_session, org_id=org.org_id, created_by=org.member_id, topic="Shared log")
        first = ProgressReporter(first_session, org_id=org.org_id, hub=ProgressHub(buffer_size=10))
        second = ProgressReporter(second_session, org_id=org.org_id, hub=ProgressHub(buffer_size=10))

        first.append(item.id, {"stage": "a", "progress_percentage": 10})
        second.append(item.id, {"stage": "b", "progress_percentage": 20})
        last = first.append(item.id, {"stage": "c", "progress_percentage": 30})

        assert last["sequence"] == 3
        stored = get_queue_item(second_session, org_id=org.org_id, queue_id=item.id)
        second_session.refresh(stored)
        assert [event["stage"] for event in second.snapshot(item.id)] == ["a", "b", "c"]
        assert [event["sequence"] for event in second.snapshot(item.id)] == [1, 2, 3]
        assert stored.current_stage == "c"
    finally:
        first_session.close()
        second_session.close()
