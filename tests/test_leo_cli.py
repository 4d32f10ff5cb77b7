"""Tests for the local CLI submission backend.

The ``leo`` executable is replaced by a small Python script that receives the
same argument vector and prints scripted output.
"""

import asyncio
import logging
import textwrap

import psutil
import pytest

from oracle_gateway.exceptions import ConfigurationError, ExecutionError
from oracle_gateway.submission.dto import extract_transaction_id
from oracle_gateway.submission.leo_cli import LeoCliBackend, classify_execution
from tests.conftest import PYTHON, TX_ID


def _fake_cli(tmp_path, body: str):
    script = tmp_path / "fake_leo.py"
    script.write_text(
        "import os, sys, time\n"
        "args = sys.argv[1:]\n"
        f"TX_ID = {TX_ID!r}\n" + textwrap.dedent(body)
    )
    return script


def _backend(script, no_sleep, attempts: int = 3, **kwargs) -> LeoCliBackend:
    return LeoCliBackend(
        program_name="oracle_test.aleo",
        network="testnet",
        endpoint="https://node.example",
        threads=2,
        executable=[PYTHON, str(script)],
        private_key="APrivateKey1test",
        attempts=attempts,
        sleep=no_sleep,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Command and classification
# ---------------------------------------------------------------------------


def test_build_command():
    backend = LeoCliBackend("oracle_test.aleo", "testnet", "https://node.example")

    assert backend.build_command(["1u8", "2u8"], "set_sgx_data") == [
        "leo",
        "execute",
        "oracle_test.aleo/set_sgx_data",
        "1u8",
        "2u8",
        "--network",
        "testnet",
        "--endpoint",
        "https://node.example",
        "--broadcast",
        "-y",
    ]


def test_classify_clean_exit_is_success():
    output = classify_execution(0, "done", "", "L")
    assert output.success is True


def test_classify_transaction_id_beats_nonzero_exit():
    output = classify_execution(1, f"broadcast {TX_ID}", "warning: slow", "L")
    assert output.success is True
    assert extract_transaction_id(output) == TX_ID


def test_classify_status_marker_in_stderr():
    assert classify_execution(2, "", "HTTP status code 201", "L").success is True


def test_classify_failure_uses_error_output():
    with pytest.raises(ExecutionError, match="insufficient balance"):
        classify_execution(1, "", "insufficient balance\n", "L")


def test_classify_failure_without_error_output():
    with pytest.raises(ExecutionError, match="Process exited with code 3"):
        classify_execution(3, "", "", "L")


def test_classify_stderr_with_zero_exit_is_failure():
    with pytest.raises(ExecutionError):
        classify_execution(0, "", "fatal: something", "L")


# ---------------------------------------------------------------------------
# Subprocess execution
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_transaction_id_with_nonzero_exit_is_success(tmp_path, no_sleep):
    script = _fake_cli(
        tmp_path,
        """
        print("Broadcasting transaction " + TX_ID, flush=True)
        sys.exit(1)
        """,
    )
    backend = _backend(script, no_sleep)

    output = await backend.execute(["a", "b"], "set_sgx_data", "SET_SGX_DATA:BTC")

    assert output.success is True
    assert extract_transaction_id(output) == TX_ID
    no_sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_process_is_terminated_once_transaction_id_seen(tmp_path, no_sleep):
    script = _fake_cli(
        tmp_path,
        """
        print(TX_ID, flush=True)
        time.sleep(60)
        """,
    )
    backend = _backend(script, no_sleep)

    output = await asyncio.wait_for(backend.execute([], "set_sgx_data", "L"), timeout=20)

    assert extract_transaction_id(output) == TX_ID


@pytest.mark.asyncio
async def test_arguments_and_environment_reach_the_process(tmp_path, no_sleep):
    script = _fake_cli(
        tmp_path,
        """
        print(" ".join(args))
        print("threads=" + os.environ["RAYON_NUM_THREADS"])
        print("key=" + os.environ["PRIVATE_KEY"])
        """,
    )
    backend = _backend(script, no_sleep)

    output = await backend.execute(["x1", "x2"], "set_key", "L")

    assert output.success is True
    assert (
        "execute oracle_test.aleo/set_key x1 x2 --network testnet "
        "--endpoint https://node.example --broadcast -y"
    ) in output.data
    assert "threads=2" in output.data
    assert "key=APrivateKey1test" in output.data


@pytest.mark.asyncio
async def test_failures_are_retried_then_raised(tmp_path, no_sleep):
    counter = tmp_path / "runs.txt"
    script = _fake_cli(
        tmp_path,
        f"""
        with open({str(counter)!r}, "a") as f:
            f.write("x")
        print("error: node unreachable", file=sys.stderr)
        sys.exit(1)
        """,
    )
    backend = _backend(script, no_sleep, attempts=3)

    with pytest.raises(ExecutionError, match="node unreachable"):
        await backend.execute([], "set_sgx_data", "L")

    assert counter.read_text() == "xxx"
    assert [call.args[0] for call in no_sleep.await_args_list] == [2.0, 4.0]


@pytest.mark.asyncio
async def test_missing_executable_is_a_configuration_error(no_sleep):
    backend = LeoCliBackend(
        "oracle_test.aleo",
        "testnet",
        "https://node.example",
        executable="definitely-not-a-real-leo-binary",
        sleep=no_sleep,
    )

    with pytest.raises(ConfigurationError):
        backend.check_configuration()
    with pytest.raises(ConfigurationError):
        await backend.execute([], "set_sgx_data", "L")
    no_sleep.assert_not_awaited()


def _is_gone(pid: int) -> bool:
    try:
        return psutil.Process(pid).status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True


@pytest.mark.asyncio
async def test_cancelled_execution_kills_the_process(tmp_path, no_sleep):
    pid_file = tmp_path / "pid.txt"
    script = _fake_cli(
        tmp_path,
        f"""
        with open({str(pid_file)!r}, "w") as f:
            f.write(str(os.getpid()))
        time.sleep(60)
        """,
    )
    backend = _backend(script, no_sleep)
    task = asyncio.create_task(backend.execute([], "set_sgx_data", "L"))

    for _ in range(200):
        if pid_file.exists() and pid_file.read_text():
            break
        await asyncio.sleep(0.05)
    pid = int(pid_file.read_text())

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    for _ in range(100):
        if _is_gone(pid):
            break
        await asyncio.sleep(0.05)
    assert _is_gone(pid)


# ---------------------------------------------------------------------------
# Resource profiling
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_resource_profiling_samples_the_running_process(tmp_path, no_sleep, caplog):
    script = _fake_cli(
        tmp_path,
        """
        ballast = bytearray(8 * 1024 * 1024)
        time.sleep(0.8)
        print(TX_ID, flush=True)
        """,
    )
    alerts = []
    backend = _backend(
        script,
        no_sleep,
        enable_resource_profiling=True,
        resource_profiling_interval=0.1,
        memory_alert_mb=1,
        on_resource_alert=alerts.append,
    )

    with caplog.at_level(logging.INFO, logger="oracle_gateway.submission.profiling"):
        output = await backend.execute([], "set_sgx_data", "SET_SGX_DATA:BTC")

    assert extract_transaction_id(output) == TX_ID
    assert "SET_SGX_DATA:BTC Leo Cli process CPU:" in caplog.text
    assert len(alerts) == 1
    assert alerts[0]["healthy"] is False
    assert alerts[0]["process"] == "SET_SGX_DATA:BTC"
    assert alerts[0]["memory_mb"] >= 1


@pytest.mark.asyncio
async def test_profiling_is_off_by_default(tmp_path, no_sleep, caplog):
    script = _fake_cli(
        tmp_path,
        """
        time.sleep(0.3)
        print(TX_ID, flush=True)
        """,
    )
    backend = _backend(script, no_sleep)

    with caplog.at_level(logging.INFO, logger="oracle_gateway.submission.profiling"):
        await backend.execute([], "set_sgx_data", "L")

    assert "Leo Cli process CPU" not in caplog.text
