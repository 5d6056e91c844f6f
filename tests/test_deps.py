import unittest

from idl_fixtures import sample_idl
from idlkit.deps import check_dependencies, is_account_pda, is_pda_auto_derivable, is_pda_complex
from idlkit.idl import AccountSpec, Pda, Seed


class PredicateTests(unittest.TestCase):
    def setUp(self) -> None:
        idl = sample_idl()
        self.init = idl.instruction("initialize")
        self.update = idl.instruction("update_config")

    def test_is_account_pda(self) -> None:
        self.assertTrue(is_account_pda(self.init.account("vault")))
        self.assertFalse(is_account_pda(self.init.account("payer")))

    def test_auto_derivable(self) -> None:
        self.assertTrue(is_pda_auto_derivable(self.init.account("state")))
        self.assertTrue(is_pda_auto_derivable(self.update.account("ledger")))
        self.assertFalse(is_pda_auto_derivable(self.init.account("vault")))
        self.assertFalse(is_pda_auto_derivable(self.init.account("payer")))
        self.assertFalse(is_pda_auto_derivable(AccountSpec("empty", pda=Pda(seeds=()))))

    def test_complex(self) -> None:
        self.assertTrue(is_pda_complex(self.update.account("member")))
        self.assertFalse(is_pda_complex(self.init.account("vault")))
        self.assertFalse(is_pda_complex(self.init.account("payer")))


class CheckDependenciesTests(unittest.TestCase):
    def setUp(self) -> None:
        idl = sample_idl()
        self.init = idl.instruction("initialize")
        self.update = idl.instruction("update_config")

    def test_arg_seed(self) -> None:
        state = self.init.account("state")
        deps = check_dependencies(state, {}, {})
        self.assertFalse(deps.ready)
        self.assertEqual(deps.missing, ["arg: amount"])
        self.assertTrue(check_dependencies(state, {"amount": 0}, {}).ready)
        self.assertFalse(check_dependencies(state, {"amount": ""}, {}).ready)

    def test_account_seed(self) -> None:
        vault = self.init.account("vault")
        self.assertEqual(check_dependencies(vault, {}, {}).missing, ["account: payer"])
        self.assertTrue(check_dependencies(vault, {}, {"payer": "addr"}).ready)

    def test_account_field_needs_only_owner(self) -> None:
        member = self.update.account("member")
        self.assertEqual(check_dependencies(member, {}, {}).missing, ["account: config"])
        self.assertTrue(check_dependencies(member, {}, {"config": "addr"}).ready)
        self.assertTrue(check_dependencies(member, {"config": "addr"}, {}).ready)

    def test_missing_in_recipe_order(self) -> None:
        entry = self.update.account("entry")
        deps = check_dependencies(entry, {}, {})
        self.assertEqual(deps.missing, ["account: config", "arg: params.label"])
        self.assertTrue(check_dependencies(entry, {"params": {"label": "x"}}, {"config": "addr"}).ready)

    def test_labels_are_deduplicated(self) -> None:
        seeds = [Seed(kind="arg", path="amount"), Seed(kind="const", value=b"a"), Seed(kind="arg", path="amount")]
        self.assertEqual(check_dependencies(seeds, {}, {}).missing, ["arg: amount"])

    def test_camel_case_inputs_count(self) -> None:
        seeds = [Seed(kind="arg", path="max_amount")]
        self.assertTrue(check_dependencies(seeds, {"maxAmount": 3}, {}).ready)

    def test_non_pda_account_is_ready(self) -> None:
        self.assertTrue(check_dependencies(self.init.account("payer"), {}, {}).ready)


if __name__ == "__main__":
    unittest.main()
