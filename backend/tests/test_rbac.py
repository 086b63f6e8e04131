import itertools
import unittest

from secureflow.middleware.rbac import RequireRole, Role, check_role, has_role
from secureflow.services.pipeline_exceptions import ForbiddenError


class TestRoleHierarchy(unittest.TestCase):
    def test_every_role_pair(self):
        for caller, required in itertools.product(Role, Role):
            with self.subTest(caller=caller.name, required=required.name):
                self.assertEqual(has_role(caller.name, required), caller >= required)

    def test_unknown_or_missing_roles_rank_as_viewer(self):
        for role in (None, "", "SUPERUSER", 3, "guest"):
            with self.subTest(role=role):
                self.assertEqual(Role.parse(role), Role.VIEWER)
                self.assertTrue(has_role(role, Role.VIEWER))
                self.assertFalse(has_role(role, Role.DEVELOPER))

    def test_role_names_are_case_insensitive(self):
        self.assertEqual(Role.parse("security_analyst"), Role.SECURITY_ANALYST)

    def test_check_role_raises_forbidden(self):
        with self.assertRaises(ForbiddenError) as ctx:
            check_role("DEVELOPER", "ADMIN")
        self.assertEqual(ctx.exception.required, "ADMIN")
        self.assertEqual(ctx.exception.actual, "DEVELOPER")

        check_role("ADMIN", "DEVELOPER")

    def test_misconfigured_required_role_fails_loudly(self):
        with self.assertRaises(KeyError):
            RequireRole("SUPERVISOR")

    def test_require_role_dependency(self):
        dependency = RequireRole(Role.SECURITY_ANALYST)
        user = {"_id": "u1", "role": "ADMIN"}

        self.assertIs(dependency(current_user=user), user)
        with self.assertRaises(ForbiddenError):
            dependency(current_user={"_id": "u2", "role": "DEVELOPER"})


if __name__ == "__main__":
    unittest.main()
