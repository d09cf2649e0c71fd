"""
状態の保存モジュール
Supabase REST API（httpx）への分割保存と、ローカルJSONキャッシュ・保存キューを扱う。

作業状態（3データ＋設定＋入力途中の下書き）を1つのJSONとして保存する。
Supabase側は1行あたりのサイズ制限があるため、文字列をチャンクに分割して保存する。

テーブル:
    module_states       (module_id PK, chunk_count, byte_length, saved_at, schema_version)
    module_state_chunks (module_id, chunk_index, data)  PK = (module_id, chunk_index)
"""

import json
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, Optional

import httpx

from .config import STATE_CHUNK_SIZE, STATE_SCHEMA_VERSION

logger = logging.getLogger(__name__)

META_TABLE = "module_states"
CHUNK_TABLE = "module_state_chunks"
CHUNK_BATCH_SIZE = 4


class PersistenceError(RuntimeError):
    """保存先との通信・復元の失敗"""


@dataclass(frozen=True)
class SaveMeta:
    chunk_count: int
    byte_length: int


def split_chunks(text: str, size: int = STATE_CHUNK_SIZE) -> list:
    chunks = [text[i:i + size] for i in range(0, len(text), size)]
    return chunks or [""]


def build_state_payload(shipping: Iterable, sales: Iterable, products: Iterable,
                        settings, progress_draft: Optional[dict] = None) -> dict:
    """保存用ペイロードを作る（JSONで往復できる値のみ）"""
    return {
        "schemaVersion": STATE_SCHEMA_VERSION,
        "savedAt": datetime.now(timezone.utc).isoformat(),
        "shippingData": [r.to_dict() for r in shipping],
        "salesData": [r.to_dict() for r in sales],
        "productData": [r.to_dict() for r in products],
        "settings": settings.to_dict(),
        "progressDraft": dict(progress_draft or {}),
    }


# ============================================
# Supabase（リモート）
# ============================================

class RemoteStateStore:
    """Supabase REST API を httpx で直接呼び出す状態保存先"""

    def __init__(self, url: str, key: str, client: Optional[httpx.Client] = None,
                 timeout: float = 30.0, chunk_size: int = STATE_CHUNK_SIZE):
        self._url = url.rstrip("/")
        self._key = key
        self._client = client or httpx.Client(timeout=timeout)
        self._chunk_size = chunk_size

    def _headers(self, prefer: str = "return=representation") -> dict:
        """Supabase REST APIの共通ヘッダー"""
        return {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
            "Content-Type": "application/json",
            "Prefer": prefer,
        }

    def _rest_url(self, table: str) -> str:
        return f"{self._url}/rest/v1/{table}"

    def _get_meta(self, module_id: str) -> Optional[dict]:
        resp = self._client.get(
            self._rest_url(META_TABLE),
            headers=self._headers(),
            params={"select": "*", "module_id": f"eq.{module_id}"},
        )
        resp.raise_for_status()
        rows = resp.json()
        return rows[0] if rows else None

    def save(self, module_id: str, payload: dict) -> SaveMeta:
        serialized = json.dumps(payload, ensure_ascii=False)
        chunks = split_chunks(serialized, self._chunk_size)
        meta = SaveMeta(chunk_count=len(chunks), byte_length=len(serialized.encode("utf-8")))
        upsert = self._headers("resolution=merge-duplicates,return=minimal")

        try:
            prev = self._get_meta(module_id)
            prev_count = int((prev or {}).get("chunk_count") or 0)

            resp = self._client.post(
                self._rest_url(META_TABLE),
                headers=upsert,
                params={"on_conflict": "module_id"},
                json={
                    "module_id": module_id,
                    "chunk_count": meta.chunk_count,
                    "byte_length": meta.byte_length,
                    "saved_at": datetime.now(timezone.utc).isoformat(),
                    "schema_version": STATE_SCHEMA_VERSION,
                },
            )
            resp.raise_for_status()

            rows = [
                {"module_id": module_id, "chunk_index": i, "data": chunk}
                for i, chunk in enumerate(chunks)
            ]
            for i in range(0, len(rows), CHUNK_BATCH_SIZE):
                resp = self._client.post(
                    self._rest_url(CHUNK_TABLE),
                    headers=upsert,
                    params={"on_conflict": "module_id,chunk_index"},
                    json=rows[i:i + CHUNK_BATCH_SIZE],
                )
                resp.raise_for_status()

            # 前回より少なくなったチャンクを削除
            if prev_count > meta.chunk_count:
                resp = self._client.delete(
                    self._rest_url(CHUNK_TABLE),
                    headers=self._headers(),
                    params={"module_id": f"eq.{module_id}",
                            "chunk_index": f"gte.{meta.chunk_count}"},
                )
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise PersistenceError(f"クラウド保存エラー: {e}") from e

        logger.info("クラウド保存完了: %s bytes (%s chunks)", meta.byte_length, meta.chunk_count)
        return meta

    def load(self, module_id: str) -> Optional[dict]:
        try:
            meta = self._get_meta(module_id)
            chunk_count = int((meta or {}).get("chunk_count") or 0)
            if chunk_count <= 0:
                return None
            resp = self._client.get(
                self._rest_url(CHUNK_TABLE),
                headers=self._headers(),
                params={
                    "select": "chunk_index,data",
                    "module_id": f"eq.{module_id}",
                    "chunk_index": f"lt.{chunk_count}",
                    "order": "chunk_index.asc",
                },
            )
            resp.raise_for_status()
            rows = resp.json()
        except httpx.HTTPError as e:
            raise PersistenceError(f"クラウド読込エラー: {e}") from e

        by_index = {int(r.get("chunk_index", -1)): r.get("data") or "" for r in rows}
        serialized = "".join(by_index.get(i, "") for i in range(chunk_count))
        if not serialized:
            return None
        try:
            return json.loads(serialized)
        except ValueError as e:
            raise PersistenceError(f"クラウドデータの形式が不正です: {e}") from e


# ============================================
# ローカルキャッシュ
# ============================================

class LocalStateCache:
    """ローカルJSONファイルへの同期保存（オフライン時の控え）"""

    def __init__(self, path: str):
        self.path = path

    def get(self) -> Optional[dict]:
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("ローカル状態の読込に失敗: %s", e)
            return None

    def set(self, payload: dict) -> bool:
        try:
            target_dir = os.path.dirname(self.path)
            if target_dir:
                os.makedirs(target_dir, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.warning("ローカル状態の保存に失敗: %s", e)
            return False

    def clear(self) -> bool:
        if os.path.exists(self.path):
            os.remove(self.path)
            return True
        return False


# ============================================
# 保存キュー（実行中に来た要求は1回分にまとめる）
# ============================================

class SaveState(Enum):
    IDLE = "idle"
    SAVING = "saving"
    SAVING_DIRTY = "saving_dirty"   # 保存中に次の要求あり


class SaveCoalescer:
    """
    保存要求のデバウンスと合流。

    保存中に来た要求は SAVING_DIRTY として1回分だけ記録し、
    実行中の保存が終わった直後にもう1回保存する。
    保存するペイロードは呼び出し側のスレッドで作ったものを預かり、
    各保存はその時点で最新のものを使う。
    """

    MIN_DELAY = 0.2

    def __init__(self, save_fn: Callable[[Optional[dict]], object], delay: float = 1.8):
        self._save_fn = save_fn
        self._delay = delay
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._state = SaveState.IDLE
        self._timer: Optional[threading.Timer] = None
        self._payload: Optional[dict] = None
        self.last_result = None
        self.last_error: Optional[Exception] = None
        self.save_count = 0

    @property
    def state(self) -> SaveState:
        return self._state

    def _stage(self, payload: Optional[dict]):
        # ロック取得中に呼ぶ
        if payload is not None:
            self._payload = payload

    def _cancel_timer(self):
        # ロック取得中に呼ぶ
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def schedule(self, payload: Optional[dict] = None, delay: Optional[float] = None):
        """delay 秒後に保存（再度呼ばれたらタイマーを張り直す）"""
        with self._lock:
            self._stage(payload)
            self._cancel_timer()
            wait = max(self.MIN_DELAY, self._delay if delay is None else delay)
            self._timer = threading.Timer(wait, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self):
        with self._lock:
            self._cancel_timer()

    def _fire(self):
        with self._lock:
            self._timer = None
        self.request()

    def _save_once(self):
        """1回保存する。失敗は記録して例外を返す"""
        with self._lock:
            payload = self._payload
        error = None
        try:
            self.last_result = self._save_fn(payload)
            self.last_error = None
        except Exception as e:
            logger.warning("状態の保存に失敗: %s", e, exc_info=True)
            self.last_error = error = e
        self.save_count += 1
        return error

    def _settle(self) -> bool:
        """保存後の状態遷移。続けてもう1回保存するなら True"""
        with self._lock:
            if self._state is SaveState.SAVING_DIRTY:
                self._state = SaveState.SAVING
                return True
            self._state = SaveState.IDLE
            self._idle.notify_all()
            return False

    def _drain(self):
        while self._settle():
            self._save_once()

    def request(self, payload: Optional[dict] = None) -> bool:
        """今すぐ保存する。保存中なら次回分として記録し False を返す"""
        with self._lock:
            self._stage(payload)
            if self._state is not SaveState.IDLE:
                self._state = SaveState.SAVING_DIRTY
                return False
            self._state = SaveState.SAVING

        self._save_once()
        self._drain()
        return True

    def request_now(self, payload: Optional[dict] = None, timeout: Optional[float] = None):
        """
        実行中の保存があれば終わるまで待ってから保存し、結果を返す。
        予約中の保存は取り消す。保存の失敗はそのまま送出する。
        """
        with self._idle:
            self._stage(payload)
            self._cancel_timer()
            if not self._idle.wait_for(lambda: self._state is SaveState.IDLE, timeout):
                raise PersistenceError("実行中の保存が終わりません")
            self._state = SaveState.SAVING

        error = self._save_once()
        result = self.last_result
        self._drain()
        if error is not None:
            raise error
        return result
