import json

import httpx

from interface.intervention_alerts import InterventionAlerts, build_notifiers, load_notification_settings
from interface.notifiers.base import BaseNotifier, Notification, NotificationPriority
from interface.notifiers.desktop_notifier import DesktopNotifier
from interface.notifiers.webhook_notifier import WebhookNotifier
from planner.health import HealthSnapshot, OverallStatus


class RecordingNotifier(BaseNotifier):
    def __init__(self, config=None, succeed=True):
        super().__init__(config)
        self.succeed = succeed
        self.sent = []

    def send(self, notification: Notification) -> bool:
        self.sent.append(notification)
        return self.succeed

    def get_name(self) -> str:
        return "recording"


def test_popup_intervention_is_sent_once(store):
    notifier = RecordingNotifier()
    store.subscribe(InterventionAlerts([notifier]))

    store.trigger_intervention("deadline_inconsistency")
    store.acknowledge_intervention()

    assert len(notifier.sent) == 1
    notification = notifier.sent[0]
    assert notification.trigger_type == "deadline_inconsistency"
    assert notification.message == store.find_trigger("deadline_inconsistency").response.message
    assert notification.intervention_id == store.state.current_intervention.id
    assert notification.priority == NotificationPriority.NORMAL


def test_conversation_level_interventions_are_not_notified(store):
    notifier = RecordingNotifier()
    store.subscribe(InterventionAlerts([notifier]))

    store.trigger_intervention("idle_too_long")

    assert notifier.sent == []


def test_red_status_raises_priority(store):
    notifier = RecordingNotifier()
    store.subscribe(InterventionAlerts([notifier]))
    store.replace_health_snapshot(HealthSnapshot(overall_status=OverallStatus.RED))

    store.trigger_intervention("deadline_inconsistency")

    assert notifier.sent[0].priority == NotificationPriority.HIGH


def test_send_skips_unavailable_and_counts_successes():
    ok = RecordingNotifier()
    failing = RecordingNotifier(succeed=False)
    disabled = RecordingNotifier({"enabled": False})
    alerts = InterventionAlerts([ok, failing, disabled])

    delivered = alerts.send(Notification(title="t", message="m"))

    assert delivered == 1
    assert disabled.sent == []
    assert len(failing.sent) == 1


def test_webhook_payloads():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200)

    transport = httpx.MockTransport(handler)
    notification = Notification(title="Deadline check", message="Fix it", intervention_id="int_1",
                                trigger_type="deadline_inconsistency")

    generic = WebhookNotifier({"webhook_url": "https://hooks.test/x"}, transport=transport)
    slack = WebhookNotifier({"webhook_url": "https://hooks.test/x", "type": "slack"}, transport=transport)

    assert generic.send(notification) is True
    assert slack.send(notification) is True
    assert bodies[0]["intervention_id"] == "int_1"
    assert bodies[0]["priority"] == "normal"
    assert bodies[1] == {"text": "*Deadline check*\nFix it"}


def test_webhook_failures_return_false():
    def server_error(request):
        return httpx.Response(500)

    def offline(request):
        raise httpx.ConnectError("down", request=request)

    notification = Notification(title="t", message="m")
    for handler in (server_error, offline):
        notifier = WebhookNotifier({"webhook_url": "https://hooks.test/x"}, transport=httpx.MockTransport(handler))
        assert notifier.send(notification) is False

    assert WebhookNotifier({}).is_available() is False


def test_desktop_notifier_uses_plyer(monkeypatch):
    calls = []
    monkeypatch.setattr(
        "interface.notifiers.desktop_notifier.plyer_notify.notify",
        lambda **kwargs: calls.append(kwargs),
    )

    notifier = DesktopNotifier({"app_name": "Planner Test"})
    sent = notifier.send(Notification(title="t", message="m", priority=NotificationPriority.URGENT))

    assert sent is True
    assert calls == [{"title": "t", "message": "m", "app_name": "Planner Test", "timeout": 10}]


def test_desktop_notifier_without_backend_degrades(monkeypatch):
    def unsupported(**kwargs):
        raise NotImplementedError

    monkeypatch.setattr("interface.notifiers.desktop_notifier.plyer_notify.notify", unsupported)
    assert DesktopNotifier().send(Notification(title="t", message="m")) is True
    assert DesktopNotifier({"enabled": False}).send(Notification(title="t", message="m")) is False


def test_notifier_settings(tmp_path):
    path = tmp_path / "notifications.yaml"
    path.write_text("webhook:\n  webhook_url: https://hooks.test/x\n  type: discord\n", encoding="utf-8")

    notifiers = build_notifiers(load_notification_settings(path))

    assert [n.get_name() for n in notifiers] == ["desktop", "webhook"]
    assert [n.get_name() for n in build_notifiers(load_notification_settings(tmp_path / "none.yaml"))] == ["desktop"]
