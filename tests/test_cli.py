from __future__ import annotations

import json
import sys

import pytest

from ethwatch import cli
from ethwatch.models import Block, BlockNumber, Transaction
from scripts.create_ddb_table import table_definition


def test_read_addresses_skips_comments(tmp_path):
    path = tmp_path / "addresses.txt"
    path.write_text("# watched\n0x1\n\n  0x2  \n", encoding="utf-8")
    assert cli._read_addresses(path) == ["0x1", "0x2"]


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_blocknumber_json(monkeypatch, capsys):
    monkeypatch.setattr(cli.JsonRpcClient, "get_block_number", lambda self: BlockNumber(hex="0x10", dec=16))
    monkeypatch.setattr(sys, "argv", ["ethwatch", "blocknumber", "--endpoint", "http://node.test", "--json"])
    assert cli.main() == 0
    assert json.loads(capsys.readouterr().out) == {"hex": "0x10", "dec": 16}


def test_block_prints_transactions(monkeypatch, capsys):
    block = Block(number=5, transactions=(Transaction("0xaa", "0x1", "0x2", 3, 5),))
    monkeypatch.setattr(cli.JsonRpcClient, "get_block", lambda self, height: block)
    monkeypatch.setattr(sys, "argv", ["ethwatch", "block", "5", "--endpoint", "http://node.test"])
    assert cli.main() == 0
    out = json.loads(capsys.readouterr().out)
    assert out["number"] == 5
    assert out["transactions"][0]["hash"] == "0xaa"


def test_watch_without_addresses(monkeypatch):
    monkeypatch.setattr(sys, "argv", ["ethwatch", "watch"])
    assert cli.main() == 2


def test_ddb_table_definition_matches_storage_keys():
    definition = table_definition("txs")
    assert definition["TableName"] == "txs"
    assert {key["AttributeName"]: key["KeyType"] for key in definition["KeySchema"]} == {
        "address": "HASH",
        "seq": "RANGE",
    }
