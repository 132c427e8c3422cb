"""
Cloud Foundry CLI が出すアプリログ（`cf logs <app>`）の1行パーサ。

想定する行の形（https://docs.cloudfoundry.org/devguide/deploy-apps/streaming-logs.html#format）：
- 例1: 2021-09-28T17:00:09.36+0900 [APP/PROC/WEB/0] OUT Started application
- 例2: 2021-09-28T17:00:09.36+0900 [RTR/0] OUT
- 例3:      2024-01-01T00:00:00 [CELL/3] ERR something failed   （先頭の空白はOK）

仕様として守りたいこと：
- どんな行が来ても例外で落ちない（合わなければ None / False を返すだけ）
- 副作用なし・決定的（同じ行なら同じ結果）
- [ ] の中身が知らない component でも「構造としては一致」とみなす
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Component(Enum):
    """[ ] の中の先頭に来るログ発生元。値は CF が出す略号。"""

    API = "API"
    STAGING = "STG"
    ROUTER = "RTR"
    LOGGREGATOR = "LGR"
    APPLICATION = "APP"
    SSH = "SSH"
    CELL = "CELL"


class Channel(Enum):
    STDOUT = "OUT"
    STDERR = "ERR"


@dataclass(frozen=True)
class ComponentInfo:
    name: Component
    index: int


@dataclass(frozen=True)
class CfAppLogEntry:
    """
    1行分のログをパースしたDTO。

    - timestamp: タイムゾーン付きなら aware、なければ naive な datetime
    - component: 解釈できた component（知らない形なら None）
    - component_text: [ ] の中身そのもの（None のときの調査用）
    - channel: OUT / ERR
    - message: 本文（空なら None）
    """

    timestamp: datetime
    component: ComponentInfo | None
    component_text: str
    channel: Channel
    message: str | None


# -------------------------
# 正規表現（テストしやすいようにトップレベルの定数にする）
# -------------------------

# CSI（色など） / OSC（タイトル等） / その他の2文字エスケープ
_ANSI_RE = re.compile(
    r"\x1b\[[0-?]*[ -/]*[@-~]"
    r"|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"
    r"|\x1b[@-Z\\-_]"
)

_TIMESTAMP_RE = re.compile(
    r"(?P<base>[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2})"
    r"(?:\.(?P<frac>[0-9]{1,9}))?"
    r"(?P<tz>[+-][0-9]{2}:?[0-9]{2})?"
)

_LINE_RE = re.compile(
    r" *(?P<ts>[^ ]+)"
    r" \[(?P<component>[^\]]*)\]"
    r" (?P<channel>OUT|ERR)"
    r"(?: (?P<msg>.*))?",
    re.DOTALL,
)

_INDEX_RE = re.compile(r"[0-9]+")

# index は u32 の範囲に収まるものだけ有効
_MAX_INDEX = 2**32 - 1


def strip_ansi_escapes(text: str) -> str:
    """色付き出力（cf logs を端末からリダイレクトした場合など）のエスケープを除く。"""
    return _ANSI_RE.sub("", text)


def parse_timestamp(text: str) -> datetime | None:
    """
    `2021-09-28T11:58:42.73+0900` 形式のタイムスタンプを datetime にする。

    - 小数秒は 1〜9 桁を許す（マイクロ秒より細かい桁は切り捨て）
    - オフセットは +HHMM / +HH:MM / 省略 のどれでもよい
    - 範囲外（13月、25時など）は None
    """
    m = _TIMESTAMP_RE.fullmatch(text)
    if not m:
        return None

    frac = (m.group("frac") or "")[:6].ljust(6, "0")
    value = f"{m.group('base')}.{frac}"
    fmt = "%Y-%m-%dT%H:%M:%S.%f"
    tz = m.group("tz")
    if tz:
        value += tz.replace(":", "")
        fmt += "%z"

    try:
        return datetime.strptime(value, fmt)
    except ValueError:
        return None


def parse_component_name(text: str) -> Component | None:
    try:
        return Component(text)
    except ValueError:
        return None


def parse_component(text: str) -> ComponentInfo | None:
    """
    [ ] の中身を ComponentInfo にする。

    受け付ける形：
    - `API/0`
    - `APP/PROC/WEB/0`（間に最大2段まで挟まってよい）

    最後の段が index（0以上の整数）でないもの、知らない名前は None。
    """
    parts = text.split("/")
    if not 2 <= len(parts) <= 4:
        return None

    name = parse_component_name(parts[0])
    if name is None:
        return None

    raw_index = parts[-1]
    if not _INDEX_RE.fullmatch(raw_index):
        return None
    index = int(raw_index)
    if index > _MAX_INDEX:
        return None
    return ComponentInfo(name=name, index=index)


def parse_channel(text: str) -> Channel | None:
    try:
        return Channel(text)
    except ValueError:
        return None


def parse_cf_app_log(line: str) -> CfAppLogEntry | None:
    """
    ログ1行をパースして CfAppLogEntry にする。形が合わなければ None。

    手順：
    1) ANSI エスケープと行末の改行を落とす
    2) 行全体の形（timestamp [component] channel message）を正規表現で見る
    3) timestamp だけは日時として解釈できるかまで確認する
    """
    s = strip_ansi_escapes(line).rstrip("\r\n")
    m = _LINE_RE.fullmatch(s)
    if not m:
        return None

    timestamp = parse_timestamp(m.group("ts"))
    if timestamp is None:
        return None

    component_text = m.group("component")
    channel = Channel(m.group("channel"))
    return CfAppLogEntry(
        timestamp=timestamp,
        component=parse_component(component_text),
        component_text=component_text,
        channel=channel,
        message=m.group("msg") or None,
    )


def is_cf_app_log_line(line: str) -> bool:
    """既定の matcher。cf_app_log_detector からはこの形（str -> bool）で差し替えられる。"""
    return parse_cf_app_log(line) is not None
