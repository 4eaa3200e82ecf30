"""KPI endpoints end to end, including tenant isolation."""

import csv
import io
from datetime import timedelta

from support import (
    RecordingNotifier,
    add_all,
    api_client,
    bearer,
    create_user,
    inbound,
    master_data,
    open_database,
    outbound,
)
from threepl_dashboard.db.base import utcnow
from threepl_dashboard.main import create_app


async def _dashboard(settings, facts):
    database = await open_database(settings)
    await add_all(database, master_data() + facts)
    admin = await create_user(database, username="admin", email="admin@example.com")
    acme = await create_user(database, username="acme", email="acme@example.com", role="client", client_id="ACME")
    notifier = RecordingNotifier(settings)
    app = create_app(settings, database, notifier)
    return app, notifier, admin, acme


def _recent(hours: int = 1):
    return utcnow() - timedelta(hours=hours)


def _shipped_order(client_id: str, order_id: str):
    return outbound(
        client_id=client_id,
        order_id=order_id,
        created_at=_recent(30),
        ready_at=_recent(29),
        cutoff_time=_recent(28),
        shipped_date=_recent(2),
        promised_date=_recent() + timedelta(days=1),
    )


async def test_damages_end_to_end(settings):
    app, notifier, admin, _ = await _dashboard(
        settings, [inbound(received_units=100, damaged_units=5, created_at=_recent())]
    )

    async with api_client(app) as client:
        response = await client.get("/api/v1/kpis/overview", headers=bearer(settings, admin))

    assert response.status_code == 200
    snapshots = {item["code"]: item for item in response.json()}
    assert len(snapshots) == 10
    damages = snapshots["DAMAGES"]
    assert (damages["value"], damages["target"], damages["delta"], damages["status"]) == (5.0, 2.0, 3.0, "critical")
    assert damages["unit"] == "%"
    assert damages["label"] == "Damaged Receipts"
    assert len(damages["trend"]) == settings.sparkline_points
    assert 5.0 in damages["trend"]
    assert "last_updated" in damages
    assert ("DAMAGES", "DAMAGES") in notifier.sent


async def test_overview_alerts_are_deduplicated_across_requests(settings):
    app, notifier, admin, acme = await _dashboard(settings, [inbound(damaged_units=50, created_at=_recent())])

    async with api_client(app) as client:
        await client.get("/api/v1/kpis/overview", headers=bearer(settings, admin))
        await client.get("/api/v1/kpis/overview", headers=bearer(settings, admin))
        admin_alerts = await client.get("/api/v1/alerts", headers=bearer(settings, admin))
        client_alerts = await client.get("/api/v1/alerts", headers=bearer(settings, acme))

    codes = [alert["kpi_code"] for alert in admin_alerts.json()]
    assert codes.count("DAMAGES") == 1
    assert len(codes) == len(set(codes))
    assert [code for code, _ in notifier.sent].count("DAMAGES") == 1
    # Alerts are raised for ALL clients, so a client-scoped listing is empty.
    assert client_alerts.status_code == 200
    assert client_alerts.json() == []


async def test_client_user_never_sees_other_tenants(settings):
    facts = [
        inbound(client_id="ACME", damaged_units=5, created_at=_recent()),
        inbound(client_id="OTHERCO", damaged_units=50, created_at=_recent()),
        _shipped_order("ACME", "ACME-1"),
        _shipped_order("OTHERCO", "OTHER-1"),
    ]
    app, _, admin, acme = await _dashboard(settings, facts)

    async with api_client(app) as client:
        headers = bearer(settings, acme)
        own = await client.get("/api/v1/kpis/overview", params={"clientId": "OTHERCO"}, headers=headers)
        detail = await client.get("/api/v1/kpis/OTIF/detail", params={"clientId": "OTHERCO"}, headers=headers)
        export = await client.get(
            "/api/v1/kpis/DAMAGES/export", params={"clientId": "OTHERCO", "format": "json"}, headers=headers
        )
        everyone = await client.get("/api/v1/kpis/overview", headers=bearer(settings, admin))
        other_only = await client.get(
            "/api/v1/kpis/overview", params={"clientId": "OTHERCO"}, headers=bearer(settings, admin)
        )

    assert own.status_code == 200
    assert {item["code"]: item["value"] for item in own.json()}["DAMAGES"] == 5.0
    assert {item["code"]: item["value"] for item in everyone.json()}["DAMAGES"] == 27.5
    assert {item["code"]: item["value"] for item in other_only.json()}["DAMAGES"] == 50.0

    body = detail.json()
    assert [entry["client_id"] for entry in body["distribution"]] == ["ACME"]
    assert [row["id"] for row in body["detail"]] == ["ACME-1"]
    assert len(body["trend"]) == settings.trend_window_days

    assert export.status_code == 200
    assert {row["client"] for row in export.json()} == {"Acme Retail"}


async def test_client_user_without_client_is_refused(settings):
    app, _, _, _ = await _dashboard(settings, [])
    database = app.state.database
    orphan = await create_user(database, username="orphan", email="orphan@example.com", role="client")

    async with api_client(app) as client:
        response = await client.get("/api/v1/kpis/overview", headers=bearer(settings, orphan))

    assert response.status_code == 403


async def test_detail_for_unknown_code_is_not_found(settings):
    app, _, admin, _ = await _dashboard(settings, [])

    async with api_client(app) as client:
        response = await client.get("/api/v1/kpis/NOPE/detail", headers=bearer(settings, admin))
        lowercase = await client.get("/api/v1/kpis/damages/detail", headers=bearer(settings, admin))

    assert response.status_code == 404
    assert response.json() == {"detail": "Unknown KPI code: NOPE"}
    assert lowercase.status_code == 200
    assert lowercase.json()["code"] == "DAMAGES"


async def test_invalid_filters_are_bad_requests(settings):
    app, _, admin, _ = await _dashboard(settings, [])

    async with api_client(app) as client:
        headers = bearer(settings, admin)
        bad_range = await client.get("/api/v1/kpis/overview", params={"dateRange": "1y"}, headers=headers)
        inverted = await client.get(
            "/api/v1/kpis/overview", params={"from": "2026-02-01", "to": "2026-01-01"}, headers=headers
        )

    assert bad_range.status_code == 400
    assert inverted.status_code == 400


async def test_csv_export_is_an_attachment(settings):
    app, _, admin, _ = await _dashboard(
        settings,
        [
            inbound(sku='SKU "quoted", with comma', damaged_units=3, created_at=_recent()),
            inbound(sku="PLAIN", damaged_units=0, created_at=_recent(2)),
        ],
    )

    async with api_client(app) as client:
        response = await client.get("/api/v1/kpis/DAMAGES/export", headers=bearer(settings, admin))
        unsupported = await client.get(
            "/api/v1/kpis/DAMAGES/export", params={"format": "xml"}, headers=bearer(settings, admin)
        )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["content-disposition"] == 'attachment; filename="DAMAGES_detail.csv"'
    rows = list(csv.DictReader(io.StringIO(response.text)))
    assert [row["sku"] for row in rows] == ['SKU "quoted", with comma', "PLAIN"]
    assert rows[0]["provider"] == "Fast Freight"
    assert unsupported.status_code == 400


async def test_master_data_is_admin_only(settings):
    app, _, admin, acme = await _dashboard(settings, [])

    async with api_client(app) as client:
        clients = await client.get("/api/v1/clients", headers=bearer(settings, admin))
        providers = await client.get("/api/v1/providers", headers=bearer(settings, admin))
        forbidden = await client.get("/api/v1/clients", headers=bearer(settings, acme))

    assert [item["id"] for item in clients.json()] == ["ACME", "OTHERCO"]
    assert [item["name"] for item in providers.json()] == ["Blueline", "Fast Freight"]
    assert forbidden.status_code == 403


async def test_alert_config_round_trip(settings):
    app, _, admin, acme = await _dashboard(settings, [])

    async with api_client(app) as client:
        saved = await client.put(
            "/api/v1/alerts/config",
            json={"OTD": {"warning": 85, "critical": 80}},
            headers=bearer(settings, admin),
        )
        unknown = await client.put(
            "/api/v1/alerts/config",
            json={"XYZ": {"warning": 1, "critical": 2}},
            headers=bearer(settings, admin),
        )
        not_numeric = await client.put(
            "/api/v1/alerts/config",
            json={"OTD": {"warning": "high", "critical": 2}},
            headers=bearer(settings, admin),
        )
        listed = await client.get("/api/v1/alerts/config", headers=bearer(settings, admin))
        forbidden = await client.put(
            "/api/v1/alerts/config", json={"OTD": {"warning": 1, "critical": 2}}, headers=bearer(settings, acme)
        )

    assert saved.status_code == 200
    assert saved.json()["updated"] == ["OTD"]
    assert unknown.status_code == 400
    assert not_numeric.status_code == 400
    assert [(item["kpi_code"], item["warning_value"]) for item in listed.json()] == [("OTD", 85.0)]
    assert forbidden.status_code == 403


async def test_configured_default_range_applies_without_query(settings):
    settings = settings.model_copy(update={"default_date_range": "7d"})
    app, _, admin, _ = await _dashboard(
        settings, [inbound(received_units=100, damaged_units=5, created_at=_recent(24 * 10))]
    )

    async with api_client(app) as client:
        headers = bearer(settings, admin)
        implicit = await client.get("/api/v1/kpis/overview", headers=headers)
        explicit = await client.get("/api/v1/kpis/overview", params={"dateRange": "30d"}, headers=headers)

    damages = {item["code"]: item["value"] for item in implicit.json()}["DAMAGES"]
    widened = {item["code"]: item["value"] for item in explicit.json()}["DAMAGES"]
    assert (damages, widened) == (0.0, 5.0)
