from app.models import WebhookEvent, WorkItem


def test_json_defaults_are_built_per_row() -> None:
    for column in (WorkItem.__table__.c.reason_included, WebhookEvent.__table__.c.payload):
        assert column.default.is_callable
        assert not isinstance(column.default.arg, dict)
