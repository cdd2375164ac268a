"""
Account Tests

Settings creation with the one-time admin bootstrap, trial activation and
admin-only privilege changes.
"""

from datetime import datetime, timedelta

import pytest

from models.account import ADMIN_BOOTSTRAP_FLAG, ParentSettings, SystemFlag
from subscription import accounts
from subscription.accounts import SettingsUpdate
from subscription.errors import Forbidden, NotFound
from web_ui.api.utils.security import hash_pin, is_valid_pin_format, verify_pin


def settings_update(theme: str = "day", pin: str = "1234") -> SettingsUpdate:
    return SettingsUpdate(
        pin_hash=hash_pin(pin),
        reading_time_limit=30,
        fullscreen_lock_enabled=True,
        theme=theme,
    )


# ============================================================================
# SETTINGS AND BOOTSTRAP
# ============================================================================

class TestCreateOrUpdateSettings:
    """First creation, bootstrap and updates"""

    def test_first_account_becomes_admin(self, db):
        first = accounts.create_or_update_settings(db, "alice", settings_update())
        second = accounts.create_or_update_settings(db, "bob", settings_update())

        assert first.is_admin is True
        assert second.is_admin is False
        flag = db.get(SystemFlag, ADMIN_BOOTSTRAP_FLAG)
        assert flag.value == "alice"

    def test_bootstrap_happens_once(self, db):
        accounts.create_or_update_settings(db, "alice", settings_update())
        db.query(ParentSettings).delete()
        db.commit()

        again = accounts.create_or_update_settings(db, "carol", settings_update())

        assert again.is_admin is False

    def test_trial_window_starts_at_creation(self, db):
        now = datetime(2024, 5, 1, 10, 0)
        account = accounts.create_or_update_settings(db, "alice", settings_update(), now)

        assert account.trial_started_at == now
        assert account.trial_ends_at == now + timedelta(days=7)
        assert account.coins == 0
        assert account.subscription_status == "trial"

    def test_update_keeps_server_fields(self, db):
        created_at = datetime(2024, 5, 1)
        accounts.create_or_update_settings(db, "alice", settings_update(), created_at)
        accounts.create_or_update_settings(db, "bob", settings_update(), created_at)

        later = created_at + timedelta(days=3)
        updated = accounts.create_or_update_settings(db, "bob", settings_update(theme="night", pin="9876"), later)

        assert updated.theme == "night"
        assert verify_pin("9876", updated.pin_hash)
        assert updated.trial_started_at == created_at
        assert updated.trial_ends_at == created_at + timedelta(days=7)
        assert updated.is_admin is False

    def test_account_dict_hides_pin(self, db):
        account = accounts.create_or_update_settings(db, "alice", settings_update())
        data = accounts.account_to_dict(account)

        assert "pinHash" not in data
        assert "pin_hash" not in data
        assert data["userId"] == "alice"
        assert data["isAdmin"] is True
        assert data["trialEndsAt"].endswith("Z")


class TestPinHashing:
    """PBKDF2 PIN hashes"""

    def test_hash_format(self):
        stored = hash_pin("1234")
        salt_hex, hash_hex = stored.split(":")
        assert len(bytes.fromhex(salt_hex)) == 16
        assert len(bytes.fromhex(hash_hex)) == 64

    def test_salted(self):
        assert hash_pin("1234") != hash_pin("1234")

    def test_verify(self):
        stored = hash_pin("4321")
        assert verify_pin("4321", stored)
        assert not verify_pin("1234", stored)

    def test_malformed_stored_hash(self):
        assert not verify_pin("1234", "not-a-hash")

    @pytest.mark.parametrize("pin,valid", [("1234", True), ("123", False), ("12a4", False), ("", False), (None, False)])
    def test_pin_format(self, pin, valid):
        assert is_valid_pin_format(pin) is valid


# ============================================================================
# TRIAL
# ============================================================================

class TestActivateTrial:
    """Idempotent trial activation"""

    def test_activate_twice_same_end(self, db, make_account):
        make_account("u1", trial_days=None)
        now = datetime(2024, 2, 1)

        first = accounts.activate_trial(db, "u1", now)
        second = accounts.activate_trial(db, "u1", now + timedelta(days=2))

        assert first.activated is True
        assert second.activated is False
        assert first.trial_ends_at == second.trial_ends_at == now + timedelta(days=7)
        assert second.message == "Trial already activated"

    def test_existing_trial_untouched(self, db, make_account):
        account = make_account("u1")
        original_end = account.trial_ends_at

        result = accounts.activate_trial(db, "u1")

        assert result.activated is False
        assert result.trial_ends_at == original_end

    def test_unknown_user(self, db):
        with pytest.raises(NotFound):
            accounts.activate_trial(db, "ghost")


# ============================================================================
# PRIVILEGE CONTROL
# ============================================================================

class TestPrivilegeControl:
    """setAdmin / setBlocked"""

    def test_admin_can_promote(self, db, make_account):
        make_account("admin", is_admin=True)
        make_account("u1")

        target = accounts.set_admin(db, "admin", "u1", True)

        assert target.is_admin is True

    def test_non_admin_cannot_promote(self, db, make_account):
        make_account("u1")
        make_account("u2")

        with pytest.raises(Forbidden):
            accounts.set_admin(db, "u1", "u1", True)

        db.expire_all()
        assert db.get(ParentSettings, "u1").is_admin is False

    def test_block_and_unblock(self, db, make_account):
        make_account("admin", is_admin=True)
        make_account("u1")

        assert accounts.set_blocked(db, "admin", "u1", True).is_blocked is True
        assert accounts.set_blocked(db, "admin", "u1", False).is_blocked is False

    def test_unknown_target(self, db, make_account):
        make_account("admin", is_admin=True)
        with pytest.raises(NotFound):
            accounts.set_blocked(db, "admin", "ghost", True)

    def test_demoted_admin_loses_rights_immediately(self, db, make_account):
        make_account("root", is_admin=True)
        make_account("deputy", is_admin=True)
        make_account("u1")

        accounts.set_admin(db, "root", "deputy", False)

        with pytest.raises(Forbidden):
            accounts.set_blocked(db, "deputy", "u1", True)
