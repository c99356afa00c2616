import unittest

from solders.pubkey import Pubkey

from vestlock.constants import U64_MAX
from vestlock.errors import InsufficientFunds, InvalidArgument, InvalidEnumerant, Overflow, Unauthorized
from vestlock.token import TOKEN_ACCOUNT_LAYOUT, AccountState, Mint, TokenAccount, apply_transfer


class TokenLayoutTests(unittest.TestCase):
    def test_sizes_match_spl_token(self) -> None:
        self.assertEqual(TokenAccount.LEN, 165)
        self.assertEqual(Mint.LEN, 82)
        self.assertEqual(TOKEN_ACCOUNT_LAYOUT.offsets["amount"], 64)
        self.assertEqual(TOKEN_ACCOUNT_LAYOUT.offsets["state"], 108)
        self.assertEqual(TOKEN_ACCOUNT_LAYOUT.offsets["close_authority"], 129)

    def test_token_account_round_trip(self) -> None:
        account = TokenAccount(
            mint=Pubkey.new_unique(),
            owner=Pubkey.new_unique(),
            amount=55,
            delegate=Pubkey.new_unique(),
            delegated_amount=5,
            close_authority=Pubkey.new_unique(),
        )
        decoded = TokenAccount.unpack(account.pack())
        self.assertEqual(decoded, account)
        self.assertIs(decoded.state, AccountState.INITIALIZED)

    def test_absent_options_pack_as_zero_tags(self) -> None:
        data = TokenAccount(mint=Pubkey.new_unique(), owner=Pubkey.new_unique()).pack()
        self.assertEqual(data[72:76], bytes(4))
        self.assertEqual(data[129:165], bytes(36))

    def test_bad_state_byte(self) -> None:
        data = bytearray(TokenAccount(mint=Pubkey.new_unique(), owner=Pubkey.new_unique()).pack())
        data[108] = 3
        with self.assertRaises(InvalidEnumerant):
            TokenAccount.unpack(bytes(data))

    def test_bad_option_tag(self) -> None:
        data = bytearray(TokenAccount(mint=Pubkey.new_unique(), owner=Pubkey.new_unique()).pack())
        data[72] = 2
        with self.assertRaises(InvalidEnumerant):
            TokenAccount.unpack(bytes(data))

    def test_mint_round_trip(self) -> None:
        mint = Mint(mint_authority=Pubkey.new_unique(), supply=10, decimals=6)
        self.assertEqual(Mint.unpack(mint.pack()), mint)


class TransferTests(unittest.TestCase):
    def setUp(self) -> None:
        self.mint = Pubkey.new_unique()
        self.owner = Pubkey.new_unique()
        self.source = TokenAccount(mint=self.mint, owner=self.owner, amount=100)
        self.destination = TokenAccount(mint=self.mint, owner=Pubkey.new_unique(), amount=7)

    def test_owner_transfer(self) -> None:
        apply_transfer(self.source, self.destination, self.owner, 40)
        self.assertEqual(self.source.amount, 60)
        self.assertEqual(self.destination.amount, 47)

    def test_insufficient_balance(self) -> None:
        with self.assertRaises(InsufficientFunds):
            apply_transfer(self.source, self.destination, self.owner, 101)
        self.assertEqual(self.source.amount, 100)

    def test_stranger_cannot_move_tokens(self) -> None:
        with self.assertRaises(Unauthorized):
            apply_transfer(self.source, self.destination, Pubkey.new_unique(), 1)

    def test_delegate_within_allowance(self) -> None:
        delegate = Pubkey.new_unique()
        self.source.delegate = delegate
        self.source.delegated_amount = 10
        apply_transfer(self.source, self.destination, delegate, 4)
        self.assertEqual(self.source.delegated_amount, 6)
        with self.assertRaises(InsufficientFunds):
            apply_transfer(self.source, self.destination, delegate, 7)
        apply_transfer(self.source, self.destination, delegate, 6)
        self.assertIsNone(self.source.delegate)

    def test_mint_mismatch(self) -> None:
        other = TokenAccount(mint=Pubkey.new_unique(), owner=Pubkey.new_unique())
        with self.assertRaises(InvalidArgument):
            apply_transfer(self.source, other, self.owner, 1)

    def test_frozen_account(self) -> None:
        self.destination.state = AccountState.FROZEN
        with self.assertRaises(InvalidArgument):
            apply_transfer(self.source, self.destination, self.owner, 1)

    def test_destination_overflow(self) -> None:
        self.destination.amount = U64_MAX
        with self.assertRaises(Overflow):
            apply_transfer(self.source, self.destination, self.owner, 1)
        self.assertEqual(self.source.amount, 100)

    def test_self_transfer_is_noop(self) -> None:
        apply_transfer(self.source, self.source, self.owner, 100)
        self.assertEqual(self.source.amount, 100)


if __name__ == "__main__":
    unittest.main()
