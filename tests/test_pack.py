import unittest

from solders.pubkey import Pubkey

from idlkit.errors import TypeMismatchError
from idlkit.pack import pack_integer, to_seed_bytes


class SeedBytesTests(unittest.TestCase):
    def test_integers_use_declared_width(self) -> None:
        cases = [
            ("u8", 200, 1),
            ("i8", -3, 1),
            ("u16", 513, 2),
            ("i16", -513, 2),
            ("u32", 70000, 4),
            ("i32", -70000, 4),
            ("u64", 2**63 + 5, 8),
            ("i64", -(2**40), 8),
        ]
        for type_name, value, width in cases:
            packed = to_seed_bytes(value, type_name)
            self.assertEqual(len(packed), width, type_name)
            signed = type_name.startswith("i")
            self.assertEqual(int.from_bytes(packed, "little", signed=signed), value, type_name)

    def test_integer_text_is_parsed(self) -> None:
        self.assertEqual(to_seed_bytes("1000", "u64"), (1000).to_bytes(8, "little"))
        self.assertEqual(pack_integer("0x01", "u16"), b"\x01\x00")

    def test_integer_range_enforced(self) -> None:
        with self.assertRaises(TypeMismatchError):
            to_seed_bytes(300, "u8")
        with self.assertRaises(TypeMismatchError):
            to_seed_bytes("1e99999999", "u64")

    def test_wide_integers_unsupported(self) -> None:
        for type_name in ("u128", "i128"):
            with self.assertRaises(TypeMismatchError) as ctx:
                to_seed_bytes(1, type_name)
            self.assertIn(f"Unsupported seed type: {type_name}", str(ctx.exception))

    def test_string_and_pubkey(self) -> None:
        self.assertEqual(to_seed_bytes("héllo", "string"), "héllo".encode("utf-8"))
        key = Pubkey.new_unique()
        self.assertEqual(to_seed_bytes(key, "pubkey"), bytes(key))
        self.assertEqual(to_seed_bytes(str(key), "publicKey"), bytes(key))
        with self.assertRaises(TypeMismatchError):
            to_seed_bytes(5, "string")

    def test_other_types_unsupported(self) -> None:
        for type_ in ("bool", "f64", {"vec": "u8"}, {"defined": "Role"}):
            with self.assertRaises(TypeMismatchError) as ctx:
                to_seed_bytes(1, type_)
            self.assertIn("Unsupported seed type", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
