"""PostgreSQL 헬스 체크 테스트.

실제 서버 없이 ``connect`` 팩토리를 MagicMock 연결로 교체한다.
"""

from __future__ import annotations

import threading
import time
from datetime import timedelta
from unittest.mock import MagicMock

import psycopg2
import pytest
from psycopg2.extensions import QueryCanceledError

from pgtray.config import DatabaseConfig
from pgtray.core.prober import (
    ACTIVE_CONNECTIONS_QUERY,
    PING_QUERY,
    UPTIME_QUERY,
    HealthProber,
)


def _fake_connection(fetch_results: list[object]) -> tuple[MagicMock, MagicMock]:
    """``fetchone`` 이 순서대로 값을 돌려주는 가짜 연결."""
    conn = MagicMock()
    cur = MagicMock()
    cur.fetchone.side_effect = fetch_results
    conn.cursor.return_value.__enter__.return_value = cur
    return conn, cur


class SlowConnection:
    """쿼리마다 지연되고 ``cancel()`` 이 진행 중인 쿼리를 중단시키는 가짜 연결."""

    def __init__(self, delay: float) -> None:
        self.delay = delay
        self.autocommit = False
        self.executed: list[str] = []
        self.closed = False
        self._cancelled = threading.Event()

    def cursor(self) -> SlowConnection:
        return self

    def __enter__(self) -> SlowConnection:
        return self

    def __exit__(self, *exc: object) -> None:
        return None

    def execute(self, query: str) -> None:
        self.executed.append(query)
        if self._cancelled.wait(self.delay):
            self._cancelled.clear()
            raise QueryCanceledError("canceling statement due to user request")

    def fetchone(self) -> tuple[int]:
        return (1,)

    def cancel(self) -> None:
        self._cancelled.set()

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_prober(db_config: DatabaseConfig, clock):
    def _make(connect) -> HealthProber:
        return HealthProber(db_config, connect=connect, clock=clock)

    return _make


class TestProbeConnected:
    """정상 연결."""

    def test_reports_metrics(self, make_prober, clock) -> None:
        conn, cur = _fake_connection([(1,), (7,), (timedelta(days=3, hours=4),)])
        result = make_prober(MagicMock(return_value=conn)).probe()

        assert result.connected is True
        assert result.active_connections == 7
        assert result.uptime == "3 days, 4:00:00"
        assert result.observed_at == clock()
        assert result.error is None
        executed = [c.args[0] for c in cur.execute.call_args_list]
        assert executed == [PING_QUERY, ACTIVE_CONNECTIONS_QUERY, UPTIME_QUERY]
        conn.close.assert_called_once()

    def test_connect_arguments_bounded(self, make_prober) -> None:
        conn, _ = _fake_connection([(1,), (1,), ("1 day",)])
        connect = MagicMock(return_value=conn)
        make_prober(connect).probe()

        kwargs = connect.call_args.kwargs
        assert kwargs["host"] == "db.example.com"
        assert kwargs["port"] == 5433
        assert kwargs["connect_timeout"] == 5
        assert "statement_timeout=5000" in kwargs["options"]

    def test_metric_failure_leaves_field_unknown(self, make_prober) -> None:
        """지표 하나가 실패해도 연결 상태는 유지된다."""
        conn, _ = _fake_connection(
            [(1,), psycopg2.ProgrammingError("permission denied"), ("2 days",)]
        )
        result = make_prober(MagicMock(return_value=conn)).probe()

        assert result.connected is True
        assert result.active_connections is None
        assert result.uptime == "2 days"

    def test_empty_metric_result_is_unknown(self, make_prober) -> None:
        conn, _ = _fake_connection([(1,), (5,), None])
        result = make_prober(MagicMock(return_value=conn)).probe()

        assert result.active_connections == 5
        assert result.uptime is None


class TestProbeDisconnected:
    """연결 실패."""

    def test_connect_timeout_reports_disconnected(self, make_prober, clock) -> None:
        """연결 타임아웃 → 끊김, 지표 unknown, 체크 시각 갱신."""
        connect = MagicMock(side_effect=psycopg2.OperationalError("timeout expired"))
        result = make_prober(connect).probe()

        assert result.connected is False
        assert result.active_connections is None
        assert result.uptime is None
        assert result.observed_at == clock()
        assert result.error == "timeout expired"

    def test_ping_failure_closes_connection(self, make_prober) -> None:
        conn, _ = _fake_connection([psycopg2.OperationalError("server closed the connection")])
        prober = make_prober(MagicMock(return_value=conn))
        result = prober.probe()

        assert result.connected is False
        assert "server closed" in (result.error or "")
        conn.close.assert_called_once()
        assert prober._active_conn is None

    def test_password_not_logged(self, make_prober, caplog) -> None:
        connect = MagicMock(side_effect=psycopg2.OperationalError("refused"))
        with caplog.at_level("DEBUG"):
            make_prober(connect).probe()
        assert "s3cret-pw" not in caplog.text


class TestProbeAbort:
    """종료 시 취소."""

    def test_abort_without_probe_is_noop(self, make_prober) -> None:
        make_prober(MagicMock()).abort()

    def test_abort_cancels_active_connection(self, make_prober) -> None:
        prober = make_prober(MagicMock())
        conn = MagicMock()
        prober._active_conn = conn
        prober.abort()
        conn.cancel.assert_called_once()


class TestProbeDeadline:
    """연결부터 지표 조회까지 전체 제한 시간."""

    def _prober(self, db_config: DatabaseConfig, conn: SlowConnection, clock) -> HealthProber:
        return HealthProber(
            db_config, timeout_sec=1.0, connect=lambda **kwargs: conn, clock=clock
        )

    def test_slow_metrics_cut_off_at_deadline(self, db_config: DatabaseConfig, clock) -> None:
        """지표 쿼리가 느려도 체크는 제한 시간 근처에서 끝난다."""
        conn = SlowConnection(delay=0.9)
        started = time.monotonic()
        result = self._prober(db_config, conn, clock).probe()
        elapsed = time.monotonic() - started

        assert elapsed < 1.5
        assert result.connected is True
        assert result.active_connections is None
        assert result.uptime is None
        assert UPTIME_QUERY not in conn.executed
        assert conn.closed is True

    def test_slow_ping_reports_timeout(self, db_config: DatabaseConfig, clock) -> None:
        conn = SlowConnection(delay=3.0)
        started = time.monotonic()
        result = self._prober(db_config, conn, clock).probe()

        assert time.monotonic() - started < 2.0
        assert result.connected is False
        assert result.error == "probe timed out"
        assert conn.executed == [PING_QUERY]
        assert conn.closed is True

    def test_connect_timeout_derived_from_budget(self, db_config: DatabaseConfig, clock) -> None:
        connect = MagicMock(return_value=SlowConnection(delay=0.0))
        HealthProber(db_config, timeout_sec=2.5, connect=connect, clock=clock).probe()

        kwargs = connect.call_args.kwargs
        assert kwargs["connect_timeout"] == 3
        assert "statement_timeout=2500" in kwargs["options"]
