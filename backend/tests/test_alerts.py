"""Alert creation, de-duplication, thresholds and e-mail delivery."""

import smtplib
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from support import BASE, RecordingNotifier, open_database, snapshot
from threepl_dashboard.core.errors import ValidationError
from threepl_dashboard.models import Alert
from threepl_dashboard.schemas.alerts import ThresholdConfig
from threepl_dashboard.services.alerts import AlertService
from threepl_dashboard.services.notifications import AlertNotifier


async def test_critical_kpis_raise_one_alert_each(settings):
    database = await open_database(settings)
    notifier = RecordingNotifier(settings)
    try:
        service = AlertService(database, notifier, settings)
        created = await service.check_kpis(
            [snapshot("DAMAGES"), snapshot("OTD", value=95.0, target=90.0, status="good")], now=BASE
        )
        alerts = await service.list_alerts()
    finally:
        await database.dispose()

    assert [alert.kpi_code for alert in created] == ["DAMAGES"]
    alert = alerts[0]
    assert alert.client_id == "ALL"
    assert alert.severity == "high"
    assert (alert.value, alert.threshold) == ("5.0", "2.0")
    assert alert.resolved is False
    assert alert.message == "Damages is above the critical threshold: 5.0% (target 2.0%)"
    assert notifier.sent == [("DAMAGES", "DAMAGES")]


async def test_duplicates_are_suppressed_within_the_window(settings):
    database = await open_database(settings)
    notifier = RecordingNotifier(settings)
    try:
        service = AlertService(database, notifier, settings)
        await service.check_kpis([snapshot()], now=BASE)
        again = await service.check_kpis([snapshot()], now=BASE + timedelta(minutes=59))
        later = await service.check_kpis([snapshot()], now=BASE + timedelta(minutes=61))
        alerts = await service.list_alerts()
    finally:
        await database.dispose()

    assert again == []
    assert len(later) == 1
    assert len(alerts) == 2
    assert alerts[0].created_at > alerts[1].created_at
    assert len(notifier.sent) == 2


async def test_resolved_alerts_do_not_suppress(settings):
    database = await open_database(settings)
    try:
        async with database.session() as session:
            session.add(
                Alert(
                    kpi_code="DAMAGES",
                    client_id="ALL",
                    message="old",
                    value="9.0",
                    threshold="2.0",
                    resolved=True,
                    created_at=BASE - timedelta(minutes=5),
                )
            )
            await session.commit()
        service = AlertService(database, RecordingNotifier(settings), settings)
        created = await service.check_kpis([snapshot()], now=BASE)
        open_alerts = await service.list_alerts()
    finally:
        await database.dispose()

    assert len(created) == 1
    assert [alert.id for alert in open_alerts] == [created[0].id]


async def test_list_alerts_filters_by_client(settings):
    database = await open_database(settings)
    try:
        async with database.session() as session:
            session.add_all(
                [
                    Alert(kpi_code="OTD", client_id="ACME", message="acme", value="1", threshold="90"),
                    Alert(kpi_code="OTD", client_id="ALL", message="all", value="1", threshold="90"),
                ]
            )
            await session.commit()
        service = AlertService(database, RecordingNotifier(settings), settings)
        acme = await service.list_alerts("ACME")
        everything = await service.list_alerts()
    finally:
        await database.dispose()

    assert [alert.message for alert in acme] == ["acme"]
    assert len(everything) == 2


async def test_alert_check_survives_storage_failure(settings, monkeypatch):
    database = await open_database(settings)
    notifier = RecordingNotifier(settings)
    try:
        service = AlertService(database, notifier, settings)

        async def broken(item, now):
            raise OperationalError("INSERT INTO alerts", {}, Exception("disk I/O error"))

        monkeypatch.setattr(service, "_raise_alert", broken)
        created = await service.check_kpis([snapshot()], now=BASE)
    finally:
        await database.dispose()

    assert created == []
    assert notifier.sent == []


async def test_threshold_config_upserts_global_rows(settings):
    database = await open_database(settings)
    try:
        service = AlertService(database, RecordingNotifier(settings), settings)
        updated = await service.update_thresholds(
            {"otd": ThresholdConfig(warning=85, critical=80), "DAMAGES": ThresholdConfig(warning=2.5, critical=3)}
        )
        await service.update_thresholds({"OTD": ThresholdConfig(warning=88, critical=82)})
        stored = {target.kpi_code: target for target in await service.list_thresholds()}
    finally:
        await database.dispose()

    assert updated == ["OTD", "DAMAGES"]
    assert set(stored) == {"OTD", "DAMAGES"}
    assert (stored["OTD"].warning_value, stored["OTD"].critical_value) == (88.0, 82.0)
    assert stored["OTD"].target_value == 90.0
    assert stored["DAMAGES"].unit == "%"
    assert stored["OTD"].client_id is None


async def test_unknown_threshold_code_is_rejected(settings):
    database = await open_database(settings)
    try:
        service = AlertService(database, RecordingNotifier(settings), settings)
        with pytest.raises(ValidationError):
            await service.update_thresholds({"BOGUS": ThresholdConfig(warning=1, critical=2)})
        assert await service.list_thresholds() == []
    finally:
        await database.dispose()


async def test_notifier_skips_without_configuration(settings):
    notifier = AlertNotifier(settings)
    alert = Alert(kpi_code="DAMAGES", client_id="ALL", message="m", value="5.0", threshold="2.0")

    assert notifier.enabled is False
    assert await notifier.send_alert(alert, snapshot()) is False


async def test_email_failures_are_swallowed(settings, monkeypatch):
    configured = settings.model_copy(update={"smtp_user": "alerts@example.com", "alert_email_to": "ops@example.com"})
    notifier = AlertNotifier(configured)

    def refuse(message):
        raise smtplib.SMTPException("connection refused")

    monkeypatch.setattr(notifier, "_deliver", refuse)
    alert = Alert(kpi_code="DAMAGES", client_id="ALL", message="m", value="5.0", threshold="2.0")

    assert notifier.enabled is True
    assert await notifier.send_alert(alert, snapshot()) is False


async def test_alert_is_kept_when_email_fails(settings, monkeypatch):
    configured = settings.model_copy(update={"smtp_user": "alerts@example.com", "alert_email_to": "ops@example.com"})
    notifier = AlertNotifier(configured)
    def unreachable(message):
        raise OSError("network down")

    monkeypatch.setattr(notifier, "_deliver", unreachable)
    database = await open_database(settings)
    try:
        service = AlertService(database, notifier, configured)
        created = await service.check_kpis([snapshot()], now=BASE)
    finally:
        await database.dispose()

    assert len(created) == 1


def test_email_message_has_text_and_html_parts(settings):
    configured = settings.model_copy(update={"smtp_user": "alerts@example.com", "alert_email_to": "ops@example.com"})
    alert = Alert(kpi_code="DAMAGES", client_id="ALL", message="Damages is high", value="5.0", threshold="2.0")
    message = AlertNotifier(configured).build_message(alert, snapshot())

    assert message["To"] == "ops@example.com"
    assert message["Subject"] == "Critical alert: Damages"
    assert message.is_multipart()
    assert "Current value: 5.0%" in message.get_body(preferencelist=("plain",)).get_content()
    assert "<h2>" in message.get_body(preferencelist=("html",)).get_content()


async def test_message_direction_follows_polarity(settings):
    database = await open_database(settings)
    try:
        service = AlertService(database, RecordingNotifier(settings), settings)
        created = await service.check_kpis([snapshot("OTD", value=50.0, target=90.0)], now=BASE)
    finally:
        await database.dispose()

    assert created[0].message == "Otd is below the critical threshold: 50.0% (target 90.0%)"
