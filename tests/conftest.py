"""
Shared fixtures for the idlcodegen test suite.

Provides a legacy-dialect and a modern-dialect IDL document, plus a
``generate`` factory that writes a generated package to a temporary
directory and imports it.
"""

import copy
import importlib
import json
import sys
import uuid
from pathlib import Path

import pytest

from idlcodegen.codegen import emit_package
from idlcodegen.output import write_package
from idlcodegen.schema import normalize

LEGACY_ADDRESS = "Fg6PaFpoGXkYsidMpWTK6W2BeZ7FEfcYkg476zPFsLnS"
MODERN_ADDRESS = "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK"
OTHER_ADDRESS = "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8"


LEGACY_IDL = {
    "version": "0.1.0",
    "name": "counter",
    "instructions": [
        {
            "name": "initialize",
            "docs": ["Create the counter account."],
            "accounts": [
                {"name": "counter", "isMut": True, "isSigner": False},
                {"name": "authority", "isMut": True, "isSigner": True},
                {"name": "systemProgram", "isMut": False, "isSigner": False},
            ],
            "args": [{"name": "startValue", "type": "u64"}],
        },
        {
            "name": "increment",
            "accounts": [
                {"name": "counter", "isMut": True, "isSigner": False},
                {"name": "authority", "isMut": False, "isSigner": True},
            ],
            "args": [],
        },
        {
            "name": "setLabel",
            "accounts": [
                {
                    "name": "admin",
                    "accounts": [
                        {"name": "counter", "isMut": True, "isSigner": False},
                        {"name": "authority", "isMut": False, "isSigner": True},
                    ],
                },
            ],
            "args": [
                {"name": "label", "type": "string"},
                {"name": "tags", "type": {"vec": "string"}},
                {"name": "limit", "type": {"option": "u32"}},
                {"name": "mode", "type": {"defined": "Mode"}},
            ],
        },
    ],
    "accounts": [
        {
            "name": "Counter",
            "discriminator": [255, 176, 4, 245, 188, 253, 124, 25],
            "type": {
                "kind": "struct",
                "fields": [
                    {"name": "authority", "type": "publicKey"},
                    {"name": "count", "type": "u64"},
                    {"name": "mode", "type": {"defined": "Mode"}},
                    {"name": "history", "type": {"vec": "i64"}},
                ],
            },
        },
        {
            "name": "Settings",
            "type": {
                "kind": "struct",
                "fields": [{"name": "paused", "type": "bool"}],
            },
        },
    ],
    "types": [
        {
            "name": "Mode",
            "type": {
                "kind": "enum",
                "variants": [
                    {"name": "Off"},
                    {"name": "On"},
                    {"name": "Limited", "fields": [{"name": "max", "type": "u32"}]},
                    {"name": "Pair", "fields": ["u8", "bool"]},
                ],
            },
        },
    ],
    "events": [
        {
            "name": "CounterChanged",
            "discriminator": [9, 8, 7, 6, 5, 4, 3, 2],
            "fields": [
                {"name": "count", "type": "u64", "index": False},
                {"name": "by", "type": "publicKey", "index": False},
            ],
        },
    ],
    "errors": [
        {"code": 6000, "name": "Overflow", "msg": "Counter overflowed"},
        {"code": 6001, "name": "Unauthorized"},
    ],
    "metadata": {"address": LEGACY_ADDRESS},
}


MODERN_IDL = {
    "address": MODERN_ADDRESS,
    "metadata": {
        "name": "amm",
        "version": "0.2.0",
        "spec": "0.1.0",
        "description": "Constant product pools",
    },
    "instructions": [
        {
            "name": "swap",
            "discriminator": [248, 198, 158, 145, 225, 117, 135, 200],
            "accounts": [
                {"name": "payer", "writable": True, "signer": True},
                {"name": "pool", "writable": True},
                {"name": "referrer", "optional": True, "writable": True},
            ],
            "args": [
                {"name": "amountIn", "type": "u64"},
                {"name": "minimumOut", "type": "u64"},
                {"name": "side", "type": {"defined": {"name": "Side"}}},
            ],
        },
        {
            "name": "createPool",
            "discriminator": [233, 146, 209, 142, 207, 104, 64, 188],
            "accounts": [
                {"name": "creator", "writable": True, "signer": True},
                {"name": "pool", "writable": True},
            ],
            "args": [
                {"name": "fees", "type": {"array": ["u16", 4]}},
                {"name": "config", "type": {"defined": {"name": "PoolConfig"}}},
            ],
        },
    ],
    "accounts": [
        {"name": "PoolState", "discriminator": [247, 237, 227, 245, 215, 195, 222, 70]},
        {"name": "Oracle", "discriminator": [139, 194, 131, 179, 140, 179, 229, 244]},
    ],
    "events": [
        {"name": "SwapEvent", "discriminator": [64, 198, 205, 232, 38, 8, 113, 226]},
    ],
    "errors": [
        {"code": 6000, "name": "SlippageExceeded", "msg": "Output below minimum"},
        {"code": 6001, "name": "PoolPaused", "msg": "Pool is paused"},
    ],
    "types": [
        {
            "name": "PoolState",
            "docs": ["Pool bookkeeping."],
            "type": {
                "kind": "struct",
                "fields": [
                    {"name": "authority", "type": "pubkey"},
                    {"name": "liquidity", "type": "u128"},
                    {"name": "rewards", "type": {"vec": {"defined": {"name": "RewardInfo"}}}},
                    {"name": "bump", "type": {"option": "u8"}},
                    {"name": "label", "type": "string"},
                ],
            },
        },
        {
            "name": "RewardInfo",
            "type": {
                "kind": "struct",
                "fields": [
                    {"name": "mint", "type": "pubkey"},
                    {"name": "emissions", "type": "u64"},
                ],
            },
        },
        {
            "name": "Side",
            "type": {"kind": "enum", "variants": [{"name": "Bid"}, {"name": "Ask"}]},
        },
        {
            "name": "PoolConfig",
            "type": {
                "kind": "struct",
                "fields": [
                    {"name": "feeRate", "type": "u32"},
                    {"name": "paused", "type": "bool"},
                ],
            },
        },
        {
            "name": "Oracle",
            "serialization": "bytemuck",
            "repr": {"kind": "c"},
            "type": {
                "kind": "struct",
                "fields": [
                    {"name": "price", "type": "i64"},
                    {"name": "flag", "type": "u8"},
                    {"name": "twap", "type": "u128"},
                    {"name": "window", "type": {"array": [{"defined": {"name": "Sample"}}, 2]}},
                ],
            },
        },
        {
            "name": "Sample",
            "serialization": "bytemuck",
            "type": {
                "kind": "struct",
                "fields": [
                    {"name": "slot", "type": "u32"},
                    {"name": "value", "type": "u16"},
                ],
            },
        },
        {
            "name": "SwapEvent",
            "type": {
                "kind": "struct",
                "fields": [
                    {"name": "pool", "type": "pubkey"},
                    {"name": "amountIn", "type": "u64"},
                    {"name": "side", "type": {"defined": {"name": "Side"}}},
                ],
            },
        },
    ],
    "constants": [
        {"name": "SEED", "type": "bytes", "value": "[112, 111, 111, 108]"},
        {"name": "maxRewards", "type": "u8", "value": "3"},
        {"name": "FEE_DENOMINATOR", "type": "u64", "value": "1_000_000"},
        {"name": "LABEL", "type": "string", "value": "\"amm\""},
    ],
}


INITIALIZE_ONLY_IDL = {
    "instructions": [{"name": "Initialize", "accounts": [], "args": []}],
}


@pytest.fixture
def legacy_idl():
    return copy.deepcopy(LEGACY_IDL)


@pytest.fixture
def modern_idl():
    return copy.deepcopy(MODERN_IDL)


@pytest.fixture
def legacy_schema(legacy_idl):
    return normalize(legacy_idl)


@pytest.fixture
def modern_schema(modern_idl):
    return normalize(modern_idl)


@pytest.fixture
def generate(tmp_path, monkeypatch):
    """
    Factory: normalize an IDL dict, write the generated package under
    ``tmp_path`` with a unique module name and import it.
    """
    out_dir = tmp_path / "generated"
    created = []

    def _generate(idl, prefix: str = "bindings"):
        schema = normalize(copy.deepcopy(idl))
        package = emit_package(schema)
        module = f"{prefix}_{uuid.uuid4().hex[:8]}"
        write_package(package, schema, out_dir, module)
        monkeypatch.syspath_prepend(str(out_dir))
        created.append(module)
        return importlib.import_module(module)

    yield _generate

    for module in created:
        for name in list(sys.modules):
            if name == module or name.startswith(module + "."):
                del sys.modules[name]


@pytest.fixture
def idl_file(tmp_path):
    """Factory: write an IDL dict to ``tmp_path`` and return its path."""
    def _write(idl, name: str = "program.json") -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(idl))
        return path

    return _write
