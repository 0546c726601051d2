import pytest

from tardy_pulse.admin import LATE_REPORT_FEATURE, AdminService
from tardy_pulse.exceptions import AuthorizationError, NotFoundError, ValidationError


@pytest.fixture()
def admin(database):
    return AdminService(database, ["9002"])


def test_bootstrap_promotes_only_configured_ids(admin, database, make_user):
    chief = make_user("9002", "Chief")
    alice = make_user("1001", "Alice")

    assert admin.bootstrap(chief).user_type == "superadmin"
    assert admin.bootstrap(alice).user_type == "user"
    assert database.get_user_by_telegram_id("9002")["user_type"] == "superadmin"
    assert database.get_user_by_telegram_id("1001")["user_type"] == "user"


def test_bootstrap_keeps_existing_superadmins(admin, make_user):
    owner = make_user("7007", "Owner", user_type="superadmin")

    assert admin.bootstrap(owner) is owner
    assert owner.user_type == "superadmin"


def test_group_activation_requires_superadmin(admin, make_user, make_group):
    make_group(active=False)
    boss = make_user("9001", "Boss", user_type="admin")

    with pytest.raises(AuthorizationError):
        admin.set_group_active(boss, "-1001", True)


def test_group_activation_registers_unseen_groups(admin, database, make_user):
    chief = admin.bootstrap(make_user("9002", "Chief"))

    group = admin.set_group_active(chief, "-1004", True)

    assert group.is_active is True
    assert database.get_group_by_telegram_id("-1004")["is_active"] == 1
    with pytest.raises(ValidationError):
        admin.set_group_active(chief, "front-office", True)


def test_feature_switch(admin, database, make_user, make_group):
    chief = admin.bootstrap(make_user("9002", "Chief"))
    group = make_group(feature=False)

    admin.set_group_feature(chief, group.id, LATE_REPORT_FEATURE, True)
    _, features = admin.group_features(chief, group.telegram_id)

    assert features == {LATE_REPORT_FEATURE: True}
    with pytest.raises(ValidationError):
        admin.set_group_feature(chief, group.id, "payroll", True)
    with pytest.raises(NotFoundError):
        admin.set_group_feature(chief, 999, LATE_REPORT_FEATURE, True)


def test_superadmin_cannot_demote_themselves(admin, make_user):
    chief = admin.bootstrap(make_user("9002", "Chief"))

    with pytest.raises(ValidationError):
        admin.demote(chief, "9002")
