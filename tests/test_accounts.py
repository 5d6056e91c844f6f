import asyncio
import json
import unittest
from unittest.mock import AsyncMock, MagicMock

from solders.pubkey import Pubkey

from idl_fixtures import ALT_PROGRAM_BYTES, PROGRAM_ID, sample_idl
from idlkit.accounts import (
    AccountInfo,
    derive_account_pda,
    derive_pda,
    derive_pda_with_bump,
    find_program_address,
    resolve_seeds,
)
from idlkit.errors import MissingInputError, ResolutionError, SchemaError, SeedSizeError
from idlkit.idl import Seed

PROGRAM = Pubkey.from_string(PROGRAM_ID)


def _info(data: bytes = b"\x00") -> AccountInfo:
    return AccountInfo(owner=PROGRAM, data=data)


class SyncSeedTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.idl = sample_idl()
        self.ix = self.idl.instruction("initialize")

    async def test_integer_arg_seed_matches_runtime(self) -> None:
        state = self.ix.account("state")
        pda = await derive_account_pda(state, instruction=self.ix, idl=self.idl, args={"amount": 1000})
        expected, _ = Pubkey.find_program_address([(1000).to_bytes(8, "little")], PROGRAM)
        self.assertEqual(pda, expected)

    async def test_text_and_number_inputs_agree(self) -> None:
        state = self.ix.account("state")
        a = await derive_account_pda(state, instruction=self.ix, idl=self.idl, args={"amount": "1000"})
        b = await derive_account_pda(state, instruction=self.ix, idl=self.idl, args={"amount": 1000})
        self.assertEqual(a, b)

    async def test_const_and_account_seeds(self) -> None:
        payer = Pubkey.new_unique()
        vault = self.ix.account("vault")
        pda, bump = await derive_pda_with_bump(
            vault.pda.seeds,
            PROGRAM_ID,
            instruction=self.ix,
            idl=self.idl,
            accounts={"payer": str(payer)},
        )
        self.assertEqual((pda, bump), Pubkey.find_program_address([b"vault", bytes(payer)], PROGRAM))
        self.assertEqual(find_program_address([b"vault", bytes(payer)], PROGRAM_ID), (pda, bump))

    async def test_seed_length_limit(self) -> None:
        with self.assertRaises(SeedSizeError) as ctx:
            await derive_pda([Seed(kind="const", value=b"x" * 50)], PROGRAM_ID, instruction=self.ix)
        self.assertIn("exceeds 32 bytes", str(ctx.exception))
        self.assertEqual(ctx.exception.length, 50)
        pda = await derive_pda([Seed(kind="const", value=b"x" * 32)], PROGRAM_ID, instruction=self.ix)
        self.assertIsInstance(pda, Pubkey)

    async def test_long_string_arg_seed(self) -> None:
        seeds = [Seed(kind="arg", path="label")]
        ix = self.idl.instruction("update_config")
        with self.assertRaises(SchemaError):
            await derive_pda(seeds, PROGRAM_ID, instruction=ix, idl=self.idl, args={"label": "x"})
        with self.assertRaises(SeedSizeError):
            await derive_pda(
                [Seed(kind="arg", path="params.label")],
                PROGRAM_ID,
                instruction=ix,
                idl=self.idl,
                args={"params": {"label": "y" * 40}},
            )

    async def test_missing_arg_names_dependency(self) -> None:
        state = self.ix.account("state")
        for args in ({}, {"amount": ""}, {"amount": None}):
            with self.assertRaises(MissingInputError) as ctx:
                await derive_account_pda(state, instruction=self.ix, idl=self.idl, args=args)
            self.assertIn("amount", str(ctx.exception))
            self.assertEqual(ctx.exception.missing, ["arg: amount"])

    async def test_zero_is_a_value(self) -> None:
        state = self.ix.account("state")
        pda = await derive_account_pda(state, instruction=self.ix, idl=self.idl, args={"amount": 0})
        self.assertEqual(pda, Pubkey.find_program_address([bytes(8)], PROGRAM)[0])

    async def test_missing_account_names_dependency(self) -> None:
        vault = self.ix.account("vault")
        with self.assertRaises(MissingInputError) as ctx:
            await derive_account_pda(vault, instruction=self.ix, idl=self.idl, accounts={"payer": ""})
        self.assertIn("payer", str(ctx.exception))

    async def test_undeclared_arg(self) -> None:
        with self.assertRaises(SchemaError) as ctx:
            await derive_pda([Seed(kind="arg", path="ghost")], PROGRAM_ID, instruction=self.ix, args={"ghost": 1})
        self.assertIn("Missing argument type for ghost", str(ctx.exception))

    async def test_dotted_arg_path_reads_struct_field(self) -> None:
        config = json.dumps({"owner": str(Pubkey.new_unique()), "bump": 5, "counter": 10})
        seeds = [Seed(kind="arg", path="config.bump"), Seed(kind="arg", path="config.counter")]
        pda = await derive_pda(seeds, PROGRAM_ID, instruction=self.ix, idl=self.idl, args={"config": config})
        expected = Pubkey.find_program_address([b"\x05", (10).to_bytes(8, "little")], PROGRAM)[0]
        self.assertEqual(pda, expected)

    async def test_deterministic_regardless_of_map_order(self) -> None:
        payer = str(Pubkey.new_unique())
        other = str(Pubkey.new_unique())
        seeds = [Seed(kind="account", path="payer"), Seed(kind="arg", path="amount")]
        first = await derive_pda(
            seeds, PROGRAM_ID, instruction=self.ix, accounts={"payer": payer, "x": other}, args={"amount": 1, "config": "{}"}
        )
        second = await derive_pda(
            seeds, PROGRAM_ID, instruction=self.ix, accounts={"x": other, "payer": payer}, args={"config": "{}", "amount": 1}
        )
        self.assertEqual(first, second)

    async def test_program_id_required(self) -> None:
        with self.assertRaises(SchemaError):
            await derive_pda([Seed(kind="const", value=b"a")], None, instruction=self.ix)

    async def test_program_seed_overrides_program(self) -> None:
        ix = self.idl.instruction("update_config")
        ledger = ix.account("ledger")
        pda = await derive_account_pda(ledger, instruction=ix, idl=self.idl)
        alt = Pubkey.from_bytes(bytes(ALT_PROGRAM_BYTES))
        self.assertEqual(pda, Pubkey.find_program_address([b"ledger"], alt)[0])

    async def test_explicit_program_id(self) -> None:
        other = Pubkey.new_unique()
        state = self.ix.account("state")
        pda = await derive_account_pda(state, instruction=self.ix, idl=self.idl, args={"amount": 1}, program_id=other)
        self.assertEqual(pda, Pubkey.find_program_address([(1).to_bytes(8, "little")], other)[0])

    async def test_program_seed_must_be_an_address(self) -> None:
        with self.assertRaises(SchemaError):
            await derive_pda_with_bump(
                [Seed(kind="const", value=b"a")],
                PROGRAM_ID,
                instruction=self.ix,
                program_seed=Seed(kind="const", value=b"short"),
            )


class AccountFieldSeedTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.idl = sample_idl()
        self.ix = self.idl.instruction("update_config")
        self.config = Pubkey.new_unique()
        self.admin = Pubkey.new_unique()
        self.fetch = AsyncMock(return_value=_info())
        self.decode = MagicMock(return_value={"admin": self.admin, "index": 7, "label": "x"})

    async def _derive(self, name: str, **kwargs):
        params = {
            "instruction": self.ix,
            "idl": self.idl,
            "accounts": {"config": str(self.config)},
            "args": {"params": {"label": "main"}},
            "fetch_account": self.fetch,
            "decode": self.decode,
        }
        params.update(kwargs)
        return await derive_account_pda(self.ix.account(name), **params)

    async def test_pubkey_field(self) -> None:
        pda = await self._derive("member")
        expected = Pubkey.find_program_address([b"member", bytes(self.admin)], PROGRAM)[0]
        self.assertEqual(pda, expected)
        self.fetch.assert_awaited_once_with(self.config)
        self.decode.assert_called_once_with("Config", b"\x00")

    async def test_pubkey_field_as_text(self) -> None:
        self.decode.return_value = {"admin": str(self.admin)}
        pda = await self._derive("member")
        self.assertEqual(pda, Pubkey.find_program_address([b"member", bytes(self.admin)], PROGRAM)[0])

    async def test_integer_field_uses_declared_width(self) -> None:
        pda = await self._derive("entry")
        expected = Pubkey.find_program_address([b"entry", (7).to_bytes(4, "little"), b"main"], PROGRAM)[0]
        self.assertEqual(pda, expected)

    async def test_attribute_style_decoded_objects(self) -> None:
        decoded = MagicMock(spec=["admin"])
        decoded.admin = self.admin
        self.decode.return_value = decoded
        pda = await self._derive("member")
        self.assertEqual(pda, Pubkey.find_program_address([b"member", bytes(self.admin)], PROGRAM)[0])

    async def test_owner_address_from_args_wins(self) -> None:
        typed = Pubkey.new_unique()
        await self._derive("member", args={"config": str(typed)})
        self.fetch.assert_awaited_once_with(typed)

    async def test_missing_owner_account(self) -> None:
        with self.assertRaises(MissingInputError) as ctx:
            await self._derive("member", accounts={})
        self.assertIn("config", str(ctx.exception))
        self.fetch.assert_not_awaited()

    async def test_missing_collaborators(self) -> None:
        with self.assertRaises(ResolutionError) as ctx:
            await self._derive("member", fetch_account=None)
        self.assertIn("No account fetcher", str(ctx.exception))

    async def test_fetch_failure_is_wrapped(self) -> None:
        self.fetch.side_effect = ConnectionError("boom")
        with self.assertRaises(ResolutionError) as ctx:
            await self._derive("member")
        self.assertIn("Failed to fetch account config", str(ctx.exception))
        self.assertIsInstance(ctx.exception.__cause__, ConnectionError)

    async def test_account_not_found(self) -> None:
        self.fetch.return_value = None
        with self.assertRaises(ResolutionError) as ctx:
            await self._derive("member")
        self.assertIn("Account not found: config", str(ctx.exception))

    async def test_decode_failure(self) -> None:
        self.decode.side_effect = ValueError("bad discriminator")
        with self.assertRaises(ResolutionError) as ctx:
            await self._derive("member")
        self.assertIn("Failed to decode account config as Config", str(ctx.exception))

    async def test_field_not_found(self) -> None:
        self.decode.return_value = {"index": 1}
        with self.assertRaises(ResolutionError) as ctx:
            await self._derive("member")
        self.assertIn("Field not found: admin", str(ctx.exception))

    async def test_field_type_not_found(self) -> None:
        seeds = [Seed(kind="account", path="config.admin", account="Ghost")]
        with self.assertRaises(ResolutionError) as ctx:
            await derive_pda(
                seeds,
                PROGRAM_ID,
                instruction=self.ix,
                idl=self.idl,
                accounts={"config": str(self.config)},
                fetch_account=self.fetch,
                decode=self.decode,
            )
        self.assertIn("Field type not found: admin in type Ghost", str(ctx.exception))

    async def test_missing_inputs_fail_before_fetching(self) -> None:
        with self.assertRaises(MissingInputError):
            await self._derive("entry", args={})
        self.fetch.assert_not_awaited()


class ConcurrentLookupTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.idl = sample_idl()
        self.ix = self.idl.instruction("update_config")
        self.slow = Pubkey.new_unique()
        self.fast = Pubkey.new_unique()
        self.values = {self.slow: 1, self.fast: 2}
        self.seeds = [
            Seed(kind="account", path="slow.index", account="Config"),
            Seed(kind="const", value=b"mid"),
            Seed(kind="account", path="fast.index", account="Config"),
        ]
        self.accounts = {"slow": str(self.slow), "fast": str(self.fast)}

    async def _fetch(self, address: Pubkey):
        if address == self.slow:
            await asyncio.sleep(0.02)
        return AccountInfo(owner=PROGRAM, data=bytes([self.values[address]]))

    @staticmethod
    def _decode(type_name: str, data: bytes):
        return {"index": data[0]}

    async def _resolve(self, concurrent: bool):
        return await resolve_seeds(
            self.seeds,
            instruction=self.ix,
            idl=self.idl,
            accounts=self.accounts,
            args={},
            fetch_account=self._fetch,
            decode=self._decode,
            concurrent=concurrent,
        )

    async def test_results_keep_recipe_order(self) -> None:
        expected = [(1).to_bytes(4, "little"), b"mid", (2).to_bytes(4, "little")]
        self.assertEqual(await self._resolve(True), expected)
        self.assertEqual(await self._resolve(False), expected)

    async def test_first_failure_in_recipe_order_wins(self) -> None:
        async def fetch(address: Pubkey):
            if address == self.slow:
                await asyncio.sleep(0.02)
                return None
            raise ConnectionError("refused")

        self._fetch = fetch
        with self.assertRaises(ResolutionError) as ctx:
            await self._resolve(True)
        self.assertIn("Account not found: slow", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
