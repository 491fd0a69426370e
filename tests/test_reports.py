from datetime import date, datetime, timezone

import pytest

from parcelops.models import ParcelStatus


@pytest.fixture
def reports(services):
    return services["report_service"]


@pytest.fixture
def ledger(parcel_repo, make_parcel):
    parcels = [
        make_parcel(origin="Bata", destination="Malabo", cost=5000,
                    created_at=datetime(2025, 3, 1, 9, tzinfo=timezone.utc)),
        make_parcel(origin="Malabo", destination="Luba", cost=2000, status=ParcelStatus.DELIVERED,
                    created_at=datetime(2025, 3, 2, 23, 59, tzinfo=timezone.utc)),
        make_parcel(origin="Bata", destination="Mongomo", cost=1500, status=ParcelStatus.IN_TRANSIT,
                    receiver_name="Ana Eyang", created_at=datetime(2025, 3, 5, tzinfo=timezone.utc)),
        make_parcel(origin="Luba", destination="Bata", cost=800, sender_id="gone",
                    created_at=datetime(2025, 4, 1, tzinfo=timezone.utc)),
    ]
    parcel_repo.replace_all(parcels)
    return parcels


def test_super_admin_dashboard_covers_network(reports, super_admin, ledger):
    stats = reports.dashboard_stats(super_admin)

    assert stats.scope == "Red Global"
    assert stats.total_parcels == 4
    assert stats.delivered == 1
    assert stats.pending == 3
    assert stats.revenue == 9300
    assert stats.by_status[ParcelStatus.IN_TRANSIT] == 1


def test_branch_admin_dashboard(reports, admin_bata, ledger):
    stats = reports.dashboard_stats(admin_bata)

    assert stats.scope == "Bata"
    assert stats.total_parcels == 3
    # revenue only counts parcels that left from Bata
    assert stats.revenue == 6500


def test_operator_dashboard_hides_revenue(reports, operator_malabo, ledger):
    stats = reports.dashboard_stats(operator_malabo)

    assert stats.total_parcels == 2
    assert stats.delivered == 1
    assert stats.revenue is None


def test_history_is_super_admin_only(reports, admin_malabo, ledger):
    assert reports.shipment_history(admin_malabo).status_code == 403


def test_history_totals(reports, super_admin, ledger):
    report = reports.shipment_history(super_admin).data

    assert report.total_shipments == 4
    assert report.total_collected == 9300
    orphan = next(r for r in report.rows if r.parcel.sender_id == "gone")
    assert orphan.sender_name == "N/A"


@pytest.mark.parametrize(
    "filters, expected_costs",
    [
        ({"search": "eyang"}, {1500}),
        ({"search": "obiang"}, {5000, 2000, 1500}),
        ({"status": ParcelStatus.DELIVERED}, {2000}),
        ({"status": "En tránsito"}, {1500}),
        ({"branch": "Luba"}, {2000, 800}),
        ({"date_start": date(2025, 3, 2), "date_end": date(2025, 3, 5)}, {2000, 1500}),
        ({"date_end": date(2025, 3, 1)}, {5000}),
        ({"branch": "Bata", "status": ParcelStatus.RECEIVED}, {5000, 800}),
    ],
)
def test_history_filters(reports, super_admin, ledger, filters, expected_costs):
    report = reports.shipment_history(super_admin, **filters).data

    assert {r.parcel.cost for r in report.rows} == expected_costs
    assert report.total_collected == sum(expected_costs)


def test_history_rejects_unknown_status(reports, super_admin, ledger):
    assert reports.shipment_history(super_admin, status="Perdido").status_code == 400
