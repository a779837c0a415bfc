import json
import os

import pytest

from decompiler import cli
from tests.test_fact_io import SCENARIO_B_FILES, write_facts


@pytest.fixture
def facts_dir(tmp_path):
    directory = tmp_path / "contract_b"
    directory.mkdir()
    return write_facts(directory, SCENARIO_B_FILES)


def test_cli_writes_tables_and_summary(tmp_path, facts_dir):
    out = tmp_path / "out"

    status = cli.main([facts_dir, "-o", str(out), "--summary", "--format", "json", "--log-level", "WARNING"])

    assert status == cli.EXIT_OK
    assert os.path.exists(out / "contract_b" / "GlobalBlockEdge.csv")
    with open(out / "contract_b" / "summary.json") as f:
        assert json.load(f)["contract"] == "contract_b"


def test_cli_reports_failure_for_missing_facts(tmp_path):
    status = cli.main([str(tmp_path / "missing"), "-o", str(tmp_path / "out"), "--log-level", "ERROR"])

    assert status == cli.EXIT_FAILED


def test_cli_size_limit_fails_contract(tmp_path, facts_dir):
    status = cli.main([facts_dir, "-o", str(tmp_path / "out"), "--max-statements", "1", "--log-level", "ERROR"])

    assert status == cli.EXIT_FAILED
    assert not os.path.exists(tmp_path / "out" / "contract_b")


def test_cli_strict_mode_flags_degraded_output(tmp_path):
    files = dict(SCENARIO_B_FILES)
    files["TAC_Use.csv"] = "s1\tvtarget\t0\ns1\tx\t2\n"
    directory = tmp_path / "degraded"
    directory.mkdir()
    write_facts(directory, files)

    lenient = cli.main([str(directory), "-o", str(tmp_path / "out1"), "--log-level", "ERROR"])
    strict = cli.main([str(directory), "-o", str(tmp_path / "out2"), "--strict", "--log-level", "ERROR"])

    assert lenient == cli.EXIT_OK
    assert strict == cli.EXIT_DEGRADED


def test_cli_bad_config_fails(tmp_path, facts_dir):
    config = tmp_path / "bad.yaml"
    config.write_text("unknown: 1\n")

    assert cli.main([facts_dir, "--config", str(config)]) == cli.EXIT_FAILED


def test_analyze_contract_status(tmp_path, facts_dir):
    name, status, violations = cli.analyze_contract(facts_dir, str(tmp_path / "out"), cli.load_config(environ={}))

    assert (name, status, violations) == ("contract_b", "ok", 0)


def test_cli_keeps_contracts_with_the_same_directory_name_apart(tmp_path):
    dirs = []
    for parent in ("a", "b"):
        directory = tmp_path / parent / "facts"
        directory.mkdir(parents=True)
        dirs.append(write_facts(directory, SCENARIO_B_FILES))
    out = tmp_path / "out"

    status = cli.main(dirs + ["-o", str(out), "--log-level", "ERROR"])

    assert status == cli.EXIT_OK
    assert sorted(os.listdir(out)) == ["facts", "facts-2"]


def test_contract_names_are_unique():
    assert cli.contract_names(["x/facts", "y/facts", "z/other", "w/facts/"]) == [
        "facts", "facts-2", "other", "facts-3",
    ]


def test_cli_bad_contract_does_not_stop_the_batch(tmp_path, facts_dir):
    files = dict(SCENARIO_B_FILES)
    del files["TAC_Op.csv"]
    bad = tmp_path / "bad"
    bad.mkdir()
    write_facts(bad, files)
    (bad / "TAC_Op.csv").write_bytes(b"s1\t\xff\xfeCALL\n")
    out = tmp_path / "out"

    status = cli.main([str(bad), facts_dir, "-o", str(out), "--log-level", "CRITICAL"])

    assert status == cli.EXIT_FAILED
    assert os.path.exists(out / "contract_b" / "GlobalBlockEdge.csv")
    assert not os.path.exists(out / "bad")


def test_unwritable_output_fails_the_contract(tmp_path, facts_dir):
    blocker = tmp_path / "out"
    blocker.write_text("not a directory")

    name, status, _ = cli.analyze_contract(facts_dir, str(blocker), cli.load_config(environ={}))

    assert (name, status) == ("contract_b", "failed")
