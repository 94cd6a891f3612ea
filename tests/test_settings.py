"""
Tests for betting settings, match availability and the admin endpoints.
"""
from datetime import date

import pytest

from app.db import BettingSetting
from app.services import settings


class TestSettings:

    def test_defaults_when_absent(self, db):
        assert settings.cutoff_minutes(db) == 15
        assert settings.maintenance_mode(db) is False
        assert settings.developer_mode(db) is False
        assert settings.enabled_national_teams(db) == []

    def test_set_and_read(self, db):
        settings.set_setting(db, settings.CUTOFF_MINUTES, "45")
        settings.set_setting(db, settings.MAINTENANCE_MODE, "TRUE")

        assert settings.cutoff_minutes(db) == 45
        assert settings.maintenance_mode(db) is True

    def test_writes_invalidate_cache(self, db):
        assert settings.developer_mode(db) is False
        settings.set_setting(db, settings.DEVELOPER_MODE, "true")
        assert settings.developer_mode(db) is True

    @pytest.mark.parametrize("value", ["abc", "0", "-5"])
    def test_bad_cutoff_falls_back(self, db, value):
        settings.set_setting(db, settings.CUTOFF_MINUTES, value)
        assert settings.cutoff_minutes(db) == 15

    def test_malformed_national_teams(self, db):
        settings.set_setting(db, settings.ENABLED_NATIONAL_TEAMS, "Spain,France")
        assert settings.enabled_national_teams(db) == []

    def test_competition_flags(self, db):
        assert settings.competition_enabled(db, "leagues") is True
        assert settings.competition_enabled(db, "coparey") is False
        assert settings.competition_enabled(db, "premier") is False

        settings.set_setting(db, "enable_coparey", "true")
        assert settings.competition_enabled(db, "coparey") is True


class TestAvailability:

    def test_open_without_rows(self, db):
        assert settings.is_date_enabled(db, 1, date(2025, 10, 26)) is True

    def test_global_row_applies_to_every_league(self, db, make_league):
        league = make_league()
        settings.set_availability(db, None, date(2025, 10, 26), False)

        assert settings.is_date_enabled(db, league.id, date(2025, 10, 26)) is False
        assert settings.is_date_enabled(db, league.id, date(2025, 10, 27)) is True

    def test_set_availability_updates_in_place(self, db):
        settings.set_availability(db, None, date(2025, 10, 26), False)
        settings.set_availability(db, None, date(2025, 10, 26), True)

        window = settings.availability_window(db, None, date(2025, 10, 20), date(2025, 10, 31))
        assert window == [{"date": "2025-10-26", "is_live_betting_enabled": True}]


class TestAdminEndpoints:

    @pytest.fixture
    def superadmin(self, make_profile):
        return make_profile(username="root", global_role="superadmin")

    def test_update_and_list_settings(self, client, db, superadmin, auth_headers):
        headers = auth_headers(superadmin)

        response = client.put("/admin/settings", headers=headers, json={
            "setting_key": "betting_cutoff_minutes",
            "setting_value": "20",
            "description": "Minutes before kickoff",
        })
        assert response.status_code == 200

        listed = client.get("/admin/settings", headers=headers).json()["settings"]
        assert [s["setting_key"] for s in listed] == ["betting_cutoff_minutes"]
        assert db.query(BettingSetting).one().setting_value == "20"
        assert settings.cutoff_minutes(db) == 20

    def test_settings_need_superadmin(self, client, make_league, make_profile, auth_headers):
        league_admin = make_profile(username="owner", league=make_league(), role="admin_league")

        response = client.get("/admin/settings", headers=auth_headers(league_admin))

        assert response.status_code == 401

    def test_superadmin_sets_global_availability(self, client, db, superadmin, auth_headers):
        response = client.put("/admin/availability", headers=auth_headers(superadmin), json={
            "date": "2025-10-26",
            "is_live_betting_enabled": False,
        })

        assert response.status_code == 200
        assert response.json() == {"league_id": None, "date": "2025-10-26", "is_live_betting_enabled": False}

        response = client.get("/admin/availability", headers=auth_headers(superadmin),
                              params={"start": "2025-10-20", "days": 10})
        assert response.json()["end"] == "2025-10-29"
        assert response.json()["days"][0]["date"] == "2025-10-26"

    def test_league_admin_scoped_to_own_league(self, client, make_league, make_profile, auth_headers):
        league = make_league()
        other = make_league(name="Rivales")
        owner = make_profile(username="owner", league=league, role="admin_league")
        headers = auth_headers(owner)

        own = client.put("/admin/availability", headers=headers, json={
            "league_id": league.id, "date": "2025-10-26", "is_live_betting_enabled": False,
        })
        foreign = client.put("/admin/availability", headers=headers, json={
            "league_id": other.id, "date": "2025-10-26", "is_live_betting_enabled": False,
        })
        global_row = client.get("/admin/availability", headers=headers)

        assert own.status_code == 200
        assert foreign.status_code == 403
        assert global_row.status_code == 403

    def test_window_limits(self, client, superadmin, auth_headers):
        response = client.get("/admin/availability", headers=auth_headers(superadmin), params={"days": 90})
        assert response.status_code == 400
