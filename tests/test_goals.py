import pytest

from database import Base, build_engine, build_session_factory
from errors import PermissionDeniedError, ValidationError
from models import GoalIcon
from schemas import GoalIn
from store import RecordStore


def make_store() -> RecordStore:
    engine = build_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    return RecordStore(build_session_factory(engine))


def test_goals_list_newest_first_for_owner_only() -> None:
    store = make_store()
    store.create_goal("alice", {"name": "Holiday", "target_cents": 200000})
    store.create_goal("alice", {"name": "New phone", "target_cents": 90000})
    store.create_goal("bob", {"name": "Car", "target_cents": 1500000})

    assert [goal.name for goal in store.list_goals("alice")] == ["New phone", "Holiday"]
    assert store.list_goals("") == []


def test_goal_progress_caps_at_one_hundred() -> None:
    store = make_store()
    goal_id = store.create_goal(
        "alice", {"name": "Emergency fund", "target_cents": 1000, "saved_cents": 250}
    )

    goal = store.get_goal(goal_id, "alice")
    assert goal.progress_percent == 25
    assert goal.completed is False

    goal = store.update_goal(goal_id, "alice", {"saved_cents": 1500})
    assert goal.progress_percent == 100
    assert goal.completed is True


def test_legacy_shield_icon_is_renamed() -> None:
    assert GoalIn(name="Safety net", target_cents=100, icon_name="ShieldAlert").icon_name is (
        GoalIcon.shield_check
    )

    store = make_store()
    goal_id = store.create_goal(
        "alice", {"name": "Safety net", "target_cents": 100, "icon_name": "ShieldAlert"}
    )
    assert store.get_goal(goal_id, "alice").icon_name == "ShieldCheck"


def test_goal_validation() -> None:
    store = make_store()

    with pytest.raises(ValidationError):
        store.create_goal("alice", {"name": "Nothing", "target_cents": 0})
    with pytest.raises(ValidationError):
        store.create_goal("alice", {"name": "Debt", "target_cents": 10, "saved_cents": -1})
    with pytest.raises(ValidationError):
        store.create_goal("alice", {"name": "Boat", "target_cents": 10, "icon_name": "Boat"})
    assert store.list_goals("alice") == []


def test_goal_mutations_are_owner_checked() -> None:
    store = make_store()
    goal_id = store.create_goal("alice", {"name": "Holiday", "target_cents": 5000})

    with pytest.raises(PermissionDeniedError):
        store.update_goal(goal_id, "bob", {"saved_cents": 5000})
    with pytest.raises(PermissionDeniedError):
        store.delete_goal(goal_id, "bob")

    store.delete_goal(goal_id, "alice")
    assert store.list_goals("alice") == []


def test_goal_name_is_stripped_before_length_check() -> None:
    store = make_store()

    with pytest.raises(ValidationError):
        store.create_goal("alice", {"name": " a ", "target_cents": 100})

    goal_id = store.create_goal("alice", {"name": "  Holiday ", "target_cents": 100})
    assert store.get_goal(goal_id, "alice").name == "Holiday"

    with pytest.raises(ValidationError):
        store.update_goal(goal_id, "alice", {"name": "  b  "})
    assert store.get_goal(goal_id, "alice").name == "Holiday"
