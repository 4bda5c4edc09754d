"""PostgreSQL 헬스 체크.

짧게 열고 닫는 연결 하나로 liveness ping과 두 가지 지표
(활성 세션 수, 서버 가동 시간)를 조회한다.

- 연결/ping 실패: ``connected=False`` 와 원인만 담고 지표 조회는 생략
- 지표 조회 실패: 해당 필드만 ``None`` (unknown), 연결 상태에는 영향 없음
- 연결은 결과와 관계없이 항상 닫힌다
- 단일 체크 내부에서는 재시도하지 않는다 (재시도 주기는 호출자 책임)
- 연결부터 마지막 지표 조회까지 전체가 ``PROBE_TIMEOUT_SEC`` 안에 끝난다.
  남은 시간이 지나면 타이머가 진행 중인 쿼리를 취소한다
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from contextlib import closing
from datetime import datetime
from typing import Any

import psycopg2
from psycopg2.extensions import connection as PgConnection  # noqa: N812

from pgtray.config import DatabaseConfig
from pgtray.models.status import ProbeResult

logger = logging.getLogger(__name__)

# 헬스 체크 전체 제한 시간 (초). 연결·ping·지표 조회를 모두 포함한다
PROBE_TIMEOUT_SEC = 5

PING_QUERY = "SELECT 1"
ACTIVE_CONNECTIONS_QUERY = "SELECT count(*) FROM pg_stat_activity WHERE state = 'active'"
UPTIME_QUERY = "SELECT now() - pg_postmaster_start_time()"


class MetricQueryError(Exception):
    """지표 쿼리 하나가 실패했을 때 발생하는 예외 (체크 내부에서 처리됨)."""

    def __init__(self, metric: str, cause: Exception) -> None:
        """초기화."""
        super().__init__(f"{metric} query failed: {cause}")
        self.metric = metric


class HealthProber:
    """PostgreSQL liveness·지표 조회기.

    Args:
        config: 접속 설정
        timeout_sec: 체크 1회 전체 제한 시간
        connect: 연결 팩토리 (테스트에서 교체)
        clock: 현재 시각 제공자
    """

    def __init__(
        self,
        config: DatabaseConfig,
        *,
        timeout_sec: float = PROBE_TIMEOUT_SEC,
        connect: Callable[..., PgConnection] = psycopg2.connect,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._config = config
        self._timeout_sec = timeout_sec
        self._connect = connect
        self._clock = clock
        self._lock = threading.Lock()
        self._active_conn: PgConnection | None = None

    def _connection_kwargs(self) -> dict[str, Any]:
        """psycopg2.connect 인자 구성.

        ``statement_timeout`` 으로 서버 측에서도 쿼리가 제한 시간을 넘지 않게 한다.
        """
        return {
            "host": self._config.host,
            "port": self._config.port,
            "user": self._config.user,
            "password": self._config.password,
            "dbname": self._config.dbname,
            "connect_timeout": max(1, math.ceil(self._timeout_sec)),
            "options": f"-c statement_timeout={int(self._timeout_sec * 1000)}",
            "application_name": "pgtray",
        }

    def probe(self) -> ProbeResult:
        """헬스 체크 1회 실행.

        Returns:
            ProbeResult (실패해도 예외를 발생시키지 않는다)
        """
        deadline = time.monotonic() + self._timeout_sec
        try:
            conn = self._connect(**self._connection_kwargs())
        except psycopg2.Error as e:
            return self._disconnected(e)

        with closing(conn):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return self._disconnected(TimeoutError("probe timed out while connecting"))
            with self._lock:
                self._active_conn = conn
            # ping과 지표 조회 전체에 남은 시간만 허용한다
            watchdog = threading.Timer(remaining, self.abort)
            watchdog.daemon = True
            watchdog.start()
            try:
                try:
                    conn.autocommit = True
                    with conn.cursor() as cur:
                        cur.execute(PING_QUERY)
                        cur.fetchone()
                except psycopg2.Error as e:
                    if time.monotonic() >= deadline:
                        return self._disconnected(TimeoutError("probe timed out"))
                    return self._disconnected(e)

                active_connections: int | None = None
                uptime: str | None = None
                try:
                    active_connections = self._query_active_connections(conn, deadline)
                except MetricQueryError as e:
                    logger.warning("Error getting active connections: %s", e)
                try:
                    uptime = self._query_uptime(conn, deadline)
                except MetricQueryError as e:
                    logger.warning("Error getting uptime: %s", e)
            finally:
                watchdog.cancel()
                with self._lock:
                    self._active_conn = None

        result = ProbeResult(
            connected=True,
            observed_at=self._clock(),
            active_connections=active_connections,
            uptime=uptime,
        )
        logger.info(
            "Probe OK: host=%s port=%d active=%s uptime=%s",
            self._config.host,
            self._config.port,
            "unknown" if active_connections is None else active_connections,
            uptime or "unknown",
        )
        return result

    def abort(self) -> None:
        """진행 중인 체크의 쿼리를 취소한다 (종료 시, 제한 시간 초과 시 호출).

        연결 자체는 :meth:`probe` 의 ``closing`` 블록에서 닫힌다.
        """
        with self._lock:
            conn = self._active_conn
        if conn is None:
            return
        try:
            conn.cancel()
        except psycopg2.Error as e:
            logger.debug("Probe cancel failed: %s", e)

    def _query_active_connections(self, conn: PgConnection, deadline: float) -> int:
        """활성 세션 수 조회."""
        row = self._fetch_metric(conn, ACTIVE_CONNECTIONS_QUERY, "active connections", deadline)
        return int(row)

    def _query_uptime(self, conn: PgConnection, deadline: float) -> str:
        """서버 가동 시간 조회 (interval → 문자열)."""
        value = self._fetch_metric(conn, UPTIME_QUERY, "uptime", deadline)
        return str(value)

    def _fetch_metric(
        self,
        conn: PgConnection,
        query: str,
        metric: str,
        deadline: float,
    ) -> Any:
        """단일 값 쿼리. 제한 시간이 이미 지났으면 조회하지 않는다.

        Raises:
            MetricQueryError: 쿼리 실패, 빈 결과, 제한 시간 초과
        """
        if time.monotonic() >= deadline:
            raise MetricQueryError(metric, TimeoutError("probe deadline exceeded"))
        try:
            with conn.cursor() as cur:
                cur.execute(query)
                row = cur.fetchone()
        except psycopg2.Error as e:
            raise MetricQueryError(metric, e) from e
        if row is None or row[0] is None:
            raise MetricQueryError(metric, ValueError("empty result"))
        return row[0]

    def _disconnected(self, error: Exception) -> ProbeResult:
        """연결 실패 결과 생성."""
        message = str(error).strip() or type(error).__name__
        logger.warning(
            "Probe failed: host=%s port=%d: %s",
            self._config.host,
            self._config.port,
            message,
        )
        return ProbeResult(connected=False, observed_at=self._clock(), error=message)
