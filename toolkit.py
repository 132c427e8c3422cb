"""
cf-app-log-detector の「I/Oまわり」部品集（toolkit）

狙い：
- 判定ロジック（cflog_parser / cf_app_log_detector）から、環境変数やloggerの扱いを切り離す
- ツール本体は「1行を判定して数える」ことに集中できるようにする

注意：
- ここに入れるのは「ツールの仕様に依存しないもの」だけ
- 環境変数名やオプション名の対応表は cf_app_log_detector 側で持つ
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Mapping


def parse_provided_options(argv: list[str] | None, short_aliases: Mapping[str, str] | None = None) -> set[str]:
    """
    どのオプションが CLI で明示されたかを、long名（--xxx）の集合で返す。

    目的：
    - env が「既定値」を埋めるのはOK
    - ただし「ユーザーがCLIで明示した値」は上書きしない（= CLI優先を守る）

    short_aliases を渡すと、短いオプションも long名に寄せて数える：
      {"-p": "--percentage-matching"} なら `-p 80` / `-p80` / `-dp 80` も拾う
    """
    if argv is None:
        return set()
    aliases = dict(short_aliases or {})
    provided: set[str] = set()
    for token in argv:
        if token == "--":
            # 以降は位置引数
            break
        if token.startswith("--"):
            provided.add(token.split("=", 1)[0])
            continue
        if token.startswith("-") and len(token) > 1:
            # 束ねた短いオプション（-dp80）は、知らない文字（値）が出たところで止める
            for ch in token[1:]:
                long_name = aliases.get("-" + ch)
                if long_name is None:
                    break
                provided.add(long_name)
    return provided


def parse_bool(value: str) -> bool:
    """
    env用のboolパース（環境変数は文字列なので明示変換が必要）。

    true: 1, true, yes, y, on
    false: 0, false, no, n, off
    """
    v = value.strip().lower()
    if v in {"1", "true", "yes", "y", "on"}:
        return True
    if v in {"0", "false", "no", "n", "off"}:
        return False
    return bool(v)


def get_env(name: str, environ: Mapping[str, str] | None = None) -> str | None:
    """
    環境変数取得。空文字は「未指定」と同じ扱いにする。

    environ はテスト用の差し替え口（省略時は os.environ）。
    """
    source = os.environ if environ is None else environ
    v = source.get(name)
    if v is not None and v != "":
        return v
    return None


def setup_logger(name: str, level: int = logging.WARNING) -> logging.Logger:
    """
    ログをstderrに出すためのloggerを構成する。

    設計意図：
    - 判定結果の1行も stderr に出すが、診断ログは [LEVEL] 付きで見分けられるようにする
    - 何度呼んでも handler が増えない（テストで main を繰り返し呼ぶため）
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    logger.handlers.clear()

    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    logger.addHandler(handler)
    return logger
