"""Tests for best-effort ownership enforcement."""

from unittest.mock import Mock

from filemanager.exceptions import IOFailureError
from filemanager.ownership import OwnershipEnforcer


class TestOwnershipEnforcer:
    def test_no_owner_skips_chown(self):
        backend = Mock()
        assert OwnershipEnforcer(backend, "").apply("/srv/acme/a.txt") is False
        backend.chown.assert_not_called()

    def test_applies_owner(self):
        backend = Mock()
        enforcer = OwnershipEnforcer(backend, "acme")

        assert enforcer.apply("/srv/acme/docs", recursive=True) is True
        backend.chown.assert_called_once_with("/srv/acme/docs", "acme", recursive=True)

    def test_failure_does_not_propagate(self):
        backend = Mock()
        backend.chown.side_effect = IOFailureError("chown failed: operation not permitted")

        assert OwnershipEnforcer(backend, "acme").apply("/srv/acme/a.txt") is False
