import pytest

from parcelops.models import NotificationType, UserRole
from parcelops.utils.passwords import verify_password


@pytest.fixture
def customers(services):
    return services["customer_service"]


@pytest.fixture
def users(services):
    return services["user_service"]


@pytest.fixture
def customer_input():
    return {
        "fullName": "Pedro Ondo",
        "phone": "+240 333 444 555",
        "address": "Ebebiyín, Centro",
        "dni": "5550001-C",
        "email": "",
    }


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------

def test_admin_creates_customer(customers, admin_bata, customer_input, notification_repo):
    result = customers.create_customer(customer_input, admin_bata)

    assert result.status_code == 201
    assert result.data.full_name == "Pedro Ondo"
    assert result.data.email is None
    latest = notification_repo.get_all()[0]
    assert latest.title == "Nuevo Cliente Registrado"
    assert latest.target_branch is None
    assert latest.type == NotificationType.SUCCESS
    assert "en la sucursal Bata" in latest.message


def test_operator_cannot_create_customer(customers, operator_malabo, customer_input):
    assert customers.create_customer(customer_input, operator_malabo).status_code == 403


def test_duplicate_dni_is_a_conflict(customers, admin_bata, customer_input):
    customer_input["dni"] = "1234567-A"

    assert customers.create_customer(customer_input, admin_bata).status_code == 409


def test_blank_name_is_rejected(customers, admin_bata, customer_input):
    customer_input["fullName"] = "  "

    assert customers.create_customer(customer_input, admin_bata).status_code == 400


def test_list_customers_search(customers):
    assert [c.id for c in customers.list_customers("obiang")] == ["1"]
    assert [c.id for c in customers.list_customers("9876543")] == ["2"]
    assert [c.id for c in customers.list_customers("555 123")] == ["2"]
    assert len(customers.list_customers()) == 2


def test_update_customer(customers, admin_malabo, customer_input):
    customer_input["dni"] = "9876543-B"

    result = customers.update_customer("2", customer_input, admin_malabo)

    assert result.success
    assert customers.list_customers("Pedro")[0].id == "2"


def test_update_customer_dni_clash(customers, admin_malabo, customer_input):
    customer_input["dni"] = "1234567-A"

    assert customers.update_customer("2", customer_input, admin_malabo).status_code == 409


def test_update_unknown_customer(customers, admin_malabo, customer_input):
    assert customers.update_customer("nope", customer_input, admin_malabo).status_code == 404


def test_delete_customer_keeps_parcels(customers, admin_bata, parcel_repo):
    result = customers.delete_customer("1", admin_bata)

    assert result.success
    assert [c.id for c in customers.list_customers()] == ["2"]
    assert parcel_repo.get_by_id("p1").sender_id == "1"
    assert customers.delete_customer("1", admin_bata).status_code == 404


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def _user_input(**overrides):
    data = {
        "name": "Nuevo Operador",
        "email": "Nuevo@SM-Global.com",
        "password": "clave",
        "role": UserRole.OPERATOR,
        "branch": "Bata",
    }
    data.update(overrides)
    return data


def test_admin_creates_operator_in_own_branch(users, admin_bata, user_repo):
    result = users.create_user(_user_input(), admin_bata)

    assert result.status_code == 201
    assert result.data.password_hash is None
    stored = user_repo.get_by_email("nuevo@sm-global.com")
    assert stored.email == "nuevo@sm-global.com"
    assert verify_password(stored.password_hash, "clave")
    assert stored.password_hash != "clave"


def test_admin_cannot_create_user_elsewhere(users, admin_bata):
    assert users.create_user(_user_input(branch="Malabo"), admin_bata).status_code == 403


def test_admin_cannot_create_super_admin(users, admin_bata):
    payload = _user_input(role=UserRole.SUPER_ADMIN)

    assert users.create_user(payload, admin_bata).status_code == 403


def test_super_admin_creates_users_anywhere(users, super_admin):
    result = users.create_user(_user_input(branch="Luba", role=UserRole.ADMIN), super_admin)

    assert result.status_code == 201
    assert result.data.branch == "Luba"


def test_operator_cannot_manage_users(users, operator_malabo):
    assert users.create_user(_user_input(branch="Malabo"), operator_malabo).status_code == 403


def test_duplicate_email_is_a_conflict(users, super_admin):
    payload = _user_input(email="MALABO@sm-global.com")

    assert users.create_user(payload, super_admin).status_code == 409


def test_invalid_email_is_rejected(users, super_admin):
    assert users.create_user(_user_input(email="no-at-sign"), super_admin).status_code == 400


def test_list_users_hides_password_hashes(users, super_admin):
    listed = users.list_users(super_admin)

    assert len(listed) == 4
    assert all(u.password_hash is None for u in listed)


def test_list_users_scoped_to_branch(users, admin_malabo, operator_malabo):
    assert {u.id for u in users.list_users(admin_malabo)} == {"u-2", "u-4"}
    assert users.list_users(operator_malabo) == []
    assert [u.id for u in users.list_users(admin_malabo, search="operador")] == ["u-4"]


def test_super_admin_can_never_be_deleted(users, super_admin, admin_malabo):
    assert users.delete_user("u-1", super_admin).status_code == 403
    assert users.delete_user("u-1", admin_malabo).status_code == 403


def test_admin_deletes_own_branch_staff(users, admin_malabo, user_repo):
    assert users.delete_user("u-4", admin_malabo).success
    assert user_repo.get_by_id("u-4") is None


def test_admin_cannot_delete_other_branch_staff(users, admin_bata):
    assert users.delete_user("u-4", admin_bata).status_code == 403


def test_admin_cannot_delete_self(users, admin_malabo):
    assert users.delete_user("u-2", admin_malabo).status_code == 409


def test_operator_cannot_delete(users, operator_malabo):
    assert users.delete_user("u-2", operator_malabo).status_code == 403


def test_delete_unknown_user(users, super_admin):
    assert users.delete_user("u-999", super_admin).status_code == 404
