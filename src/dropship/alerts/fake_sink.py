"""Fake alert sink: records alerts for test assertions."""

from dropship.alerts.sink import AlertSeverity, AlertSink


class FakeAlertSink(AlertSink):
    def __init__(self):
        self.alerts: list[dict] = []

    def send(self, message: str, severity: AlertSeverity = AlertSeverity.WARNING) -> None:
        self.alerts.append({"message": message, "severity": severity.value})

    def by_severity(self, severity: AlertSeverity) -> list[dict]:
        return [alert for alert in self.alerts if alert["severity"] == severity.value]
