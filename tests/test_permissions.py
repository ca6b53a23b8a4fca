import unittest

from services.scheduler.permissions import PermissionGate
from services.scheduler.platform import InMemoryNotificationPlatform


class ExplodingPlatform(InMemoryNotificationPlatform):
    def request_permission(self) -> bool:
        raise RuntimeError("notification service unavailable")


class PermissionGateTests(unittest.TestCase):
    def setUp(self) -> None:
        self.platform = InMemoryNotificationPlatform()
        self.gate = PermissionGate(self.platform)

    def test_grant_is_cached(self) -> None:
        self.assertTrue(self.gate.is_granted())
        self.assertTrue(self.gate.is_granted())
        self.assertEqual(1, self.platform.calls.count("request_permission"))

    def test_denial_is_asked_again(self) -> None:
        self.platform.permission_granted = False
        self.assertFalse(self.gate.is_granted())

        self.platform.permission_granted = True
        self.assertTrue(self.gate.is_granted())
        self.assertEqual(2, self.platform.calls.count("request_permission"))

    def test_refresh_and_revoke(self) -> None:
        self.assertIsNone(self.gate.last_known)

        self.gate.is_granted()
        self.platform.permission_granted = False
        self.assertFalse(self.gate.refresh())
        self.assertIs(False, self.gate.last_known)

        self.gate.revoke()
        self.assertIsNone(self.gate.last_known)


    def test_platform_error_means_not_granted(self) -> None:
        gate = PermissionGate(ExplodingPlatform())
        self.assertFalse(gate.is_granted())
        self.assertIs(False, gate.last_known)
