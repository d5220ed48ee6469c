import uuid
from datetime import datetime, timezone

from xfactor_api.models.support import SupportTicket
from xfactor_api.services.support_service import format_ticket, is_staff, new_message

from tests.conftest import make_user


def build_ticket(owner):
    now = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
    support = make_user("support")
    return SupportTicket(
        id=uuid.uuid4(),
        user_id=owner["id"],
        title="Video does not load",
        description="The lesson video stays black",
        status="open",
        priority="medium",
        messages=[
            new_message(owner, "The lesson video stays black"),
            new_message(support, "Probably the CDN again", is_internal=True),
            new_message(support, "Could you try another browser?"),
        ],
        created_at=now,
        updated_at=now,
    )


def test_owner_does_not_see_internal_notes():
    owner = make_user("learner")
    view = format_ticket(build_ticket(owner), owner)
    assert [m["message"] for m in view["messages"]] == [
        "The lesson video stays black",
        "Could you try another browser?",
    ]


def test_staff_sees_everything():
    owner = make_user("learner")
    view = format_ticket(build_ticket(owner), make_user("admin"))
    assert len(view["messages"]) == 3
    assert view["assigned_to"] is None


def test_staff_roles():
    assert is_staff(make_user("support"))
    assert is_staff(make_user("admin"))
    assert not is_staff(make_user("manager"))
