"""
End-to-end tests: generate bindings, import them and exercise the wire format.
"""

import logging

import pytest
from solders.instruction import Instruction
from solders.pubkey import Pubkey

from idlcodegen.codegen import emit_package
from idlcodegen.codegen.emitter import UNIT_NAMES, assemble_check
from idlcodegen.exceptions import CodegenAssemblyError
from idlcodegen.runtime import (
    BorshReader,
    BorshWriter,
    DiscriminatorMismatch,
    PayloadMalformed,
    PayloadTooShort,
    ProgramInstruction,
    UnknownDiscriminator,
)
from idlcodegen.schema import normalize

from conftest import (
    INITIALIZE_ONLY_IDL,
    LEGACY_ADDRESS,
    LEGACY_IDL,
    MODERN_ADDRESS,
    MODERN_IDL,
    OTHER_ADDRESS,
)

PAYER = Pubkey.from_string(OTHER_ADDRESS)
POOL = Pubkey.from_string("9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin")
MINT = Pubkey.from_string("So11111111111111111111111111111111111111112")


@pytest.fixture
def amm(generate):
    return generate(MODERN_IDL, "amm")


@pytest.fixture
def counter(generate):
    return generate(LEGACY_IDL, "counter")


class TestEmission:
    """Rendered sources, before anything is imported."""

    def test_every_unit_is_rendered(self, modern_schema):
        package = emit_package(modern_schema)
        assert sorted(package.sources) == sorted(f"{name}.py" for name in UNIT_NAMES)

    def test_output_is_deterministic(self, modern_schema):
        assert emit_package(modern_schema).sources == emit_package(modern_schema).sources

    def test_header_and_docstring(self, modern_schema):
        source = emit_package(modern_schema).source("types")
        assert source.startswith('"""User-defined types of the amm program."""')
        assert "# Generated by idlcodegen. Do not edit by hand." in source

    def test_imports_only_what_is_used(self, modern_schema):
        package = emit_package(modern_schema)
        instructions = package.source("instructions")
        assert "from .types import PoolConfig, Side" in instructions
        accounts = package.source("accounts")
        assert "from .types import Oracle, PoolState" in accounts
        assert "solders" not in accounts

    def test_empty_units_carry_a_marker(self):
        package = emit_package(normalize(INITIALIZE_ONLY_IDL))
        types = package.source("types")
        assert "# No types defined" in types
        assert "__all__ = []" in types
        assert "dataclass" not in types
        assert "# No accounts defined" in package.source("accounts")
        assert "# No errors defined" in package.source("errors")
        assert "# No events defined" in package.source("events")

    def test_zero_copy_hazard_is_documented(self, modern_schema):
        accounts = emit_package(modern_schema).source("accounts")
        assert "# Zero-copy decode" in accounts
        assert "r.read_fixed(Oracle)" in accounts

    def test_assemble_check_rejects_invalid_source(self):
        with pytest.raises(CodegenAssemblyError) as exc_info:
            assemble_check("types", "def broken(:\n")
        assert exc_info.value.unit == "types"

    def test_unresolved_reference_warns(self, caplog):
        schema = normalize({
            "instructions": [],
            "types": [{"name": "Holder", "type": {"kind": "struct", "fields": [
                {"name": "item", "type": {"defined": "Missing"}},
            ]}}],
        })
        with caplog.at_level(logging.WARNING):
            emit_package(schema)
        assert "Missing" in caplog.text

    def test_invalid_program_address_omits_program_id(self, caplog):
        schema = normalize({"address": "not-base58!", "instructions": []})
        with caplog.at_level(logging.WARNING):
            source = emit_package(schema).source("__init__")
        assert "PROGRAM_ID = " not in source
        assert "# PROGRAM_ID:" in source


class TestInitializeOnlyProgram:
    """A single untagged instruction takes the all-zero derived tag."""

    @pytest.fixture
    def program(self, generate):
        return generate(INITIALIZE_ONLY_IDL, "init")

    def test_derived_tag(self, program):
        assert program.INITIALIZE_IX_DISCM == bytes(8)
        assert program.InitializeIxData.DISCRIMINATOR == bytes(8)

    def test_decode_zero_prefix(self, program):
        decoded = program.decode_instruction(bytes(8))
        assert isinstance(decoded, program.InitializeIxData)
        assert isinstance(decoded, ProgramInstruction)

    def test_other_prefix_is_unknown(self, program):
        with pytest.raises(UnknownDiscriminator) as exc_info:
            program.decode_instruction(bytes([1, 0, 0, 0, 0, 0, 0, 0]))
        assert exc_info.value.actual == bytes([1, 0, 0, 0, 0, 0, 0, 0])

    def test_short_input(self, program):
        with pytest.raises(PayloadTooShort):
            program.decode_instruction(b"\x00\x00\x00")

    def test_no_program_id_declared(self, program):
        assert not hasattr(program, "PROGRAM_ID")

    def test_builder_without_accounts(self, program):
        program_id = Pubkey.from_string(OTHER_ADDRESS)
        ix = program.initialize_ix(program_id, program.InitializeKeys())
        assert isinstance(ix, Instruction)
        assert ix.program_id == program_id
        assert ix.accounts == []
        assert bytes(ix.data) == bytes(8)


class TestModernAccounts:
    def make_pool(self, amm):
        return amm.PoolState(
            authority=PAYER,
            liquidity=2 ** 100,
            rewards=[amm.RewardInfo(mint=MINT, emissions=5)],
            bump=255,
            label="main",
        )

    def test_round_trip(self, amm):
        account = amm.PoolStateAccount(data=self.make_pool(amm))
        raw = account.to_bytes()
        assert raw[:8] == amm.POOL_STATE_ACCOUNT_DISCM
        assert amm.PoolStateAccount.from_bytes(raw) == account
        assert amm.decode_account(raw) == account

    def test_minimum_size_excludes_tag(self, amm):
        # pubkey + u128 + vec prefix + option tag + string prefix
        assert amm.PoolStateAccount.MIN_SIZE == 57

    def test_trailing_bytes_are_accepted(self, amm):
        account = amm.PoolStateAccount(data=self.make_pool(amm))
        assert amm.PoolStateAccount.from_bytes(account.to_bytes() + bytes(16)) == account

    def test_below_minimum_size(self, amm):
        raw = amm.POOL_STATE_ACCOUNT_DISCM + bytes(10)
        with pytest.raises(PayloadTooShort) as exc_info:
            amm.PoolStateAccount.from_bytes(raw)
        assert exc_info.value.needed == 57
        assert exc_info.value.available == 10

    def test_truncated_field_path(self, amm):
        raw = amm.PoolStateAccount(data=self.make_pool(amm)).to_bytes()
        with pytest.raises(PayloadTooShort) as exc_info:
            amm.PoolStateAccount.from_bytes(raw[:-2])
        assert exc_info.value.path == "PoolStateAccount.data.label"

    def test_invalid_option_tag_path(self, amm):
        raw = bytearray(amm.PoolStateAccount(data=self.make_pool(amm)).to_bytes())
        # tag, authority, liquidity, vec prefix, one reward -> option tag
        raw[8 + 32 + 16 + 4 + 40] = 7
        with pytest.raises(PayloadMalformed) as exc_info:
            amm.PoolStateAccount.from_bytes(bytes(raw))
        assert exc_info.value.path == "PoolStateAccount.data.bump"

    def test_wrong_discriminator(self, amm):
        raw = amm.PoolStateAccount(data=self.make_pool(amm)).to_bytes()
        wrong = amm.ORACLE_ACCOUNT_DISCM + raw[8:]
        with pytest.raises(DiscriminatorMismatch) as exc_info:
            amm.PoolStateAccount.from_bytes(wrong)
        assert exc_info.value.expected == amm.POOL_STATE_ACCOUNT_DISCM
        assert exc_info.value.actual == amm.ORACLE_ACCOUNT_DISCM

    def test_dispatch_short_and_unknown(self, amm):
        with pytest.raises(PayloadTooShort):
            amm.decode_account(b"\x01\x02")
        with pytest.raises(UnknownDiscriminator):
            amm.decode_account(bytes([7] * 8) + bytes(64))


class TestFixedLayoutAccounts:
    def make_oracle(self, amm):
        return amm.Oracle(
            price=-5,
            flag=1,
            twap=10 ** 30,
            window=[amm.Sample(slot=1, value=2), amm.Sample(slot=3, value=4)],
        )

    def test_layout_constants(self, amm):
        assert amm.Oracle.SIZE == 48
        assert amm.Oracle.LAYOUT.offsets == [0, 8, 16, 32]
        assert amm.Sample.SIZE == 8
        assert amm.OracleAccount.MIN_SIZE == 48

    def test_size_is_fields_plus_padding(self, amm):
        layout = amm.Oracle.LAYOUT
        assert layout.size == sum(ftype.size for _, ftype in layout.fields) + layout.padding

    def test_round_trip(self, amm):
        account = amm.OracleAccount(data=self.make_oracle(amm))
        raw = account.to_bytes()
        assert len(raw) == 8 + 48
        assert raw[8 + 9:8 + 16] == bytes(7)
        assert amm.OracleAccount.from_bytes(raw) == account
        assert amm.decode_account(raw) == account

    def test_short_fixed_payload(self, amm):
        with pytest.raises(PayloadTooShort) as exc_info:
            amm.OracleAccount.from_bytes(amm.ORACLE_ACCOUNT_DISCM + bytes(40))
        assert exc_info.value.needed == 48


class TestModernInstructions:
    def test_swap_builder(self, amm):
        keys = amm.SwapKeys(payer=PAYER, pool=POOL, referrer=None)
        args = amm.SwapIxArgs(amount_in=100, minimum_out=90, side=amm.SideAsk())
        ix = amm.swap_ix(amm.PROGRAM_ID, keys, args)

        assert ix.program_id == amm.PROGRAM_ID
        assert bytes(ix.data) == (
            amm.SWAP_IX_DISCM
            + (100).to_bytes(8, "little")
            + (90).to_bytes(8, "little")
            + b"\x01"
        )
        assert len(ix.accounts) == amm.SWAP_IX_ACCOUNTS_LEN == 3
        payer, pool, referrer = ix.accounts
        assert payer.pubkey == PAYER and payer.is_signer and payer.is_writable
        assert pool.pubkey == POOL and pool.is_writable and not pool.is_signer
        assert referrer.pubkey == amm.PROGRAM_ID
        assert not referrer.is_signer and not referrer.is_writable

    def test_present_optional_account(self, amm):
        metas = amm.SwapKeys(payer=PAYER, pool=POOL, referrer=MINT).to_account_metas(amm.PROGRAM_ID)
        assert metas[2].pubkey == MINT
        assert metas[2].is_writable

    def test_omitted_optional_account_needs_program_id(self, amm):
        with pytest.raises(ValueError):
            amm.SwapKeys(payer=PAYER, pool=POOL, referrer=None).to_account_metas()

    def test_decode_instruction(self, amm):
        args = amm.SwapIxArgs(amount_in=1, minimum_out=2, side=amm.SideBid())
        data = amm.SwapIxData(args).to_bytes()
        decoded = amm.decode_instruction(data)
        assert decoded == amm.SwapIxData(args)
        assert isinstance(decoded, ProgramInstruction)

    def test_fixed_array_argument(self, amm):
        args = amm.CreatePoolIxArgs(fees=[1, 2, 3, 4], config=amm.PoolConfig(fee_rate=30, paused=False))
        data = amm.CreatePoolIxData(args).to_bytes()
        assert len(data) == 8 + 4 * 2 + 4 + 1
        assert amm.decode_instruction(data) == amm.CreatePoolIxData(args)

    def test_fixed_array_length_is_enforced(self, amm):
        args = amm.CreatePoolIxArgs(fees=[1, 2], config=amm.PoolConfig(fee_rate=30, paused=False))
        with pytest.raises(ValueError):
            amm.CreatePoolIxData(args).to_bytes()

    def test_instruction_minimum_size(self, amm):
        assert amm.SwapIxData.MIN_SIZE == 8 + 8 + 1
        with pytest.raises(PayloadTooShort):
            amm.decode_instruction(amm.SWAP_IX_DISCM + bytes(4))

    def test_variants_in_declaration_order(self, amm):
        assert amm.INSTRUCTION_VARIANTS == (amm.SwapIxData, amm.CreatePoolIxData)


class TestModernEventsErrorsConstants:
    def test_event_round_trip(self, amm):
        event = amm.events.SwapEventEvent(
            data=amm.SwapEvent(pool=POOL, amount_in=5, side=amm.SideBid())
        )
        raw = event.to_bytes()
        assert raw[:8] == bytes([64, 198, 205, 232, 38, 8, 113, 226])
        assert amm.events.decode_event(raw) == event

    def test_events_are_not_reexported(self, amm):
        assert not hasattr(amm, "SwapEventEvent")
        assert not hasattr(amm, "decode_event")

    def test_error_enum(self, amm):
        assert amm.AmmError.SlippageExceeded == 6000
        assert amm.AmmError.PoolPaused.message == "Pool is paused"
        assert amm.error_from_code(6001) is amm.AmmError.PoolPaused
        assert amm.error_from_code(1) is None

    def test_constants(self, amm):
        assert amm.SEED == b"pool"
        assert amm.MAX_REWARDS == 3
        assert amm.FEE_DENOMINATOR == 1000000
        assert amm.LABEL == "amm"

    def test_program_id(self, amm):
        assert amm.PROGRAM_ID == Pubkey.from_string(MODERN_ADDRESS)


class TestLegacyProgram:
    def test_program_id_from_metadata(self, counter):
        assert counter.PROGRAM_ID == Pubkey.from_string(LEGACY_ADDRESS)

    def test_derived_instruction_tags(self, counter):
        assert counter.INITIALIZE_IX_DISCM == bytes(8)
        assert counter.INCREMENT_IX_DISCM == bytes([1, 0, 0, 0, 0, 0, 0, 0])
        assert counter.SET_LABEL_IX_DISCM == bytes([2, 0, 0, 0, 0, 0, 0, 0])

    def test_initialize_builder(self, counter):
        keys = counter.InitializeKeys(counter=POOL, authority=PAYER, system_program=MINT)
        ix = counter.initialize_ix(counter.PROGRAM_ID, keys, counter.InitializeIxArgs(start_value=7))
        assert bytes(ix.data) == bytes(8) + (7).to_bytes(8, "little")
        assert [m.is_signer for m in ix.accounts] == [False, True, False]
        assert [m.is_writable for m in ix.accounts] == [True, True, False]

    def test_no_arg_instruction(self, counter):
        ix = counter.increment_ix(counter.PROGRAM_ID, counter.IncrementKeys(counter=POOL, authority=PAYER))
        assert bytes(ix.data) == bytes([1, 0, 0, 0, 0, 0, 0, 0])
        assert counter.decode_instruction(bytes(ix.data)) == counter.IncrementIxData()

    def test_composite_accounts_and_enum_argument(self, counter):
        keys = counter.SetLabelKeys(admin_counter=POOL, admin_authority=PAYER)
        args = counter.SetLabelIxArgs(label="hi", tags=["a", "b"], limit=None, mode=counter.ModeLimited(max=3))
        ix = counter.set_label_ix(counter.PROGRAM_ID, keys, args)
        assert [m.pubkey for m in ix.accounts] == [POOL, PAYER]
        assert counter.decode_instruction(bytes(ix.data)) == counter.SetLabelIxData(args)

    def test_inline_account_round_trip(self, counter):
        account = counter.CounterAccount(
            data=counter.Counter(
                authority=PAYER,
                count=42,
                mode=counter.ModePair(field_0=1, field_1=True),
                history=[-1, 2],
            )
        )
        raw = account.to_bytes()
        assert raw[:8] == bytes([255, 176, 4, 245, 188, 253, 124, 25])
        assert counter.decode_account(raw) == account

    def test_untagged_account_has_payload_only(self, counter):
        assert hasattr(counter, "Settings")
        assert not hasattr(counter, "SettingsAccount")

    def test_inline_event(self, counter):
        event = counter.events.CounterChangedEvent(data=counter.events.CounterChanged(count=3, by=PAYER))
        assert counter.events.decode_event(event.to_bytes()) == event

    def test_unit_variant_round_trip(self, counter):
        keys = counter.SetLabelKeys(admin_counter=POOL, admin_authority=PAYER)
        args = counter.SetLabelIxArgs(label="", tags=[], limit=9, mode=counter.ModeOff())
        data = counter.SetLabelIxData(args).to_bytes()
        assert counter.decode_instruction(data).args.mode == counter.ModeOff()
        assert counter.set_label_ix(counter.PROGRAM_ID, keys, args).data == data

    def test_invalid_variant_index(self, counter):
        data = counter.SET_LABEL_IX_DISCM + bytes(4) + bytes(4) + b"\x00" + b"\x09"
        with pytest.raises(PayloadMalformed) as exc_info:
            counter.decode_instruction(data)
        assert exc_info.value.path == "SetLabelIxData.args.mode"

    def test_error_message_fallback(self, counter):
        assert counter.CounterError.Overflow.message == "Counter overflowed"
        assert counter.CounterError.Unauthorized.message == "Unauthorized"
        assert counter.ERROR_MESSAGES[counter.CounterError.Overflow] == "Counter overflowed"


class TestEdgeCases:
    def test_duplicate_account_tags_route_to_first(self, generate, caplog):
        tag = [5, 5, 5, 5, 5, 5, 5, 5]
        idl = {
            "instructions": [],
            "accounts": [
                {"name": "First", "discriminator": tag, "type": {"kind": "struct", "fields": [{"name": "a", "type": "u8"}]}},
                {"name": "Second", "discriminator": tag, "type": {"kind": "struct", "fields": [{"name": "b", "type": "u8"}]}},
            ],
        }
        with caplog.at_level(logging.WARNING):
            program = generate(idl, "dupes")
        raw = program.SecondAccount(data=program.Second(b=1)).to_bytes()
        assert program.decode_account(raw) == program.FirstAccount(data=program.First(a=1))
        assert "shares discriminator" in caplog.text

    def test_unresolved_reference_fails_on_use(self, generate):
        program = generate({
            "instructions": [],
            "types": [{"name": "Holder", "type": {"kind": "struct", "fields": [
                {"name": "item", "type": {"defined": "Missing"}},
            ]}}],
        }, "dangling")
        with pytest.raises(NameError):
            program.Holder.deserialize(BorshReader(b"\x00"))

    def test_reserved_and_keyword_names(self, generate):
        program = generate({
            "instructions": [{
                "name": "from",
                "accounts": [{"name": "self", "isMut": True, "isSigner": False}],
                "args": [{"name": "serialize", "type": "u8"}, {"name": "class", "type": "bool"}],
            }],
        }, "escaped")
        args = program.FromIxArgs(serialize_=1, class_=True)
        ix = program.from_ix(Pubkey.from_string(OTHER_ADDRESS), program.FromKeys(self_=PAYER), args)
        assert program.decode_instruction(bytes(ix.data)) == program.FromIxData(args)


ORDER_BOOK_IDL = {
    "address": MODERN_ADDRESS,
    "metadata": {"name": "book", "version": "0.1.0"},
    "instructions": [],
    "accounts": [
        {"name": "Book", "discriminator": [1, 1, 2, 3, 5, 8, 13, 21]},
        {"name": "Tick", "discriminator": [2, 7, 1, 8, 2, 8, 1, 8]},
    ],
    "types": [
        {
            "name": "Book",
            "serialization": "bytemuck",
            "repr": {"kind": "c"},
            "type": {"kind": "struct", "fields": [
                {"name": "seq", "type": "u64"},
                {"name": "levels", "type": {"array": [{"defined": {"name": "Level"}}, 2]}},
            ]},
        },
        {
            "name": "Level",
            "serialization": "bytemuck",
            "type": {"kind": "struct", "fields": [
                {"name": "price", "type": "u32"},
                {"name": "size", "type": "u16"},
            ]},
        },
        {
            "name": "Tick",
            "serialization": "bytemuck",
            "repr": {"kind": "c", "packed": True},
            "type": {"kind": "struct", "fields": [
                {"name": "side", "type": "u8"},
                {"name": "price", "type": "u64"},
                {"name": "lots", "type": "u16"},
            ]},
        },
    ],
}


class TestZeroCopyOrdering:
    """Fixed layouts that reference structs declared further down the module."""

    @pytest.fixture
    def book(self, generate):
        return generate(ORDER_BOOK_IDL, "book")

    def test_array_of_later_struct(self, book):
        assert book.Level.SIZE == 8
        assert book.Book.LAYOUT.offsets == [0, 8]
        assert book.Book.SIZE == 24

    def test_array_of_later_struct_round_trip(self, book):
        account = book.BookAccount(data=book.Book(
            seq=9,
            levels=[book.Level(price=100, size=3), book.Level(price=101, size=4)],
        ))
        raw = account.to_bytes()
        assert len(raw) == 8 + 24
        assert book.decode_account(raw) == account

    def test_packed_account_round_trip(self, book):
        assert book.Tick.LAYOUT.offsets == [0, 1, 9]
        assert book.Tick.SIZE == 11
        account = book.TickAccount(data=book.Tick(side=1, price=2 ** 40, lots=7))
        raw = account.to_bytes()
        assert raw == (
            book.TICK_ACCOUNT_DISCM + b"\x01" + (2 ** 40).to_bytes(8, "little") + (7).to_bytes(2, "little")
        )
        assert book.decode_account(raw) == account


CONFIG_IDL = {
    "version": "0.1.0",
    "name": "settings",
    "instructions": [
        {
            "name": "setConfig",
            "accounts": [{"name": "admin", "isMut": False, "isSigner": True}],
            "args": [{"name": "config", "type": {"defined": "Config"}}],
        },
    ],
    "accounts": [
        {
            "name": "Config",
            "discriminator": [3, 1, 4, 1, 5, 9, 2, 6],
            "type": {"kind": "struct", "fields": [{"name": "fee", "type": "u16"}]},
        },
    ],
    "types": [
        {
            "name": "History",
            "type": {"kind": "struct", "fields": [
                {"name": "previous", "type": {"vec": {"defined": "Config"}}},
            ]},
        },
    ],
    "events": [
        {
            "name": "ConfigChanged",
            "discriminator": [2, 7, 1, 8, 2, 8, 1, 8],
            "fields": [{"name": "config", "type": {"defined": "Config"}, "index": False}],
        },
    ],
}


class TestInlineAccountReferences:
    """Legacy inline account types are usable from every module."""

    @pytest.fixture
    def settings(self, generate):
        return generate(CONFIG_IDL, "settings")

    def test_payload_lives_in_types_module(self):
        package = emit_package(normalize(CONFIG_IDL))
        assert "class Config:" in package.source("types")
        assert "from .types import Config" in package.source("instructions")
        assert "from .types import Config" in package.source("accounts")

    def test_instruction_argument(self, settings):
        data = settings.SetConfigIxData(settings.SetConfigIxArgs(config=settings.Config(fee=7))).to_bytes()
        assert data == bytes(8) + (7).to_bytes(2, "little")
        decoded = settings.decode_instruction(data)
        assert decoded.args.config == settings.Config(fee=7)

    def test_type_field(self, settings):
        history = settings.History(previous=[settings.Config(fee=1), settings.Config(fee=2)])
        w = BorshWriter()
        history.serialize(w)
        assert settings.History.deserialize(BorshReader(w.getvalue())) == history

    def test_event_field(self, settings):
        event = settings.events.ConfigChangedEvent(
            data=settings.events.ConfigChanged(config=settings.Config(fee=5))
        )
        assert settings.events.decode_event(event.to_bytes()) == event

    def test_account_wrapper(self, settings):
        account = settings.ConfigAccount(data=settings.Config(fee=11))
        assert settings.decode_account(account.to_bytes()) == account

    def test_no_unresolved_warning(self, caplog):
        with caplog.at_level(logging.WARNING):
            emit_package(normalize(CONFIG_IDL))
        assert "never declared" not in caplog.text


class TestDuplicateInstructionNames:
    IDL = {
        "instructions": [
            {"name": "ping", "accounts": [], "args": []},
            {"name": "ping", "accounts": [], "args": [{"name": "x", "type": "u8"}]},
        ],
    }

    def test_first_declaration_wins(self, generate, caplog):
        with caplog.at_level(logging.WARNING):
            program = generate(self.IDL, "pings")
        assert "declared more than once" in caplog.text
        assert program.INSTRUCTION_VARIANTS == (program.PingIxData,)
        assert program.PING_IX_DISCM == bytes(8)
        assert program.decode_instruction(bytes(8)) == program.PingIxData()

    def test_single_class_emitted(self):
        source = emit_package(normalize(self.IDL)).source("instructions")
        assert source.count("class PingIxData(") == 1
