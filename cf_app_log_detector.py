"""
cf-app-log-detector: ログファイルが `cf logs` の出力っぽいかを判定するツール

このツールがやること（ざっくり）：
- ログファイル（'-' なら標準入力）を1行ずつ読む
- 1行ずつ「CF のアプリログの形か」を判定して数える（判定は cflog_parser）
- 一致した行の割合が閾値（default: 90%）以上なら「CFのログ」とみなす
  --one-line-match なら1行でも一致すればよい
- 結果は終了コードで返す（0 = CFのログ / 1 = ちがう / 2 = 入力エラー）

設定の優先順位： CLI > 環境変数（CFLOG_*） > 既定値
"""

from __future__ import annotations

import argparse
import io
import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator, Mapping, TextIO

import toolkit
from cflog_parser import is_cf_app_log_line

__version__ = "0.1.0"

LOGGER_NAME = "cf-app-log-detector"
DEFAULT_PERCENTAGE_MATCHING = 90

EXIT_DETECTED = 0
EXIT_NOT_DETECTED = 1
EXIT_USAGE = 2

ENV_PERCENTAGE_MATCHING = "CFLOG_PERCENTAGE_MATCHING"
ENV_ONE_LINE_MATCH = "CFLOG_ONE_LINE_MATCH"
ENV_DEBUG = "CFLOG_DEBUG"

# 短いオプション → long名（「CLIで明示したか」の判定用）
SHORT_OPTIONS = {
    "-p": "--percentage-matching",
    "-d": "--debug",
}

LineMatcher = Callable[[str], bool]


# -------------------------
# データモデル（DTO）
# -------------------------


@dataclass(frozen=True)
class DetectorConfig:
    """CLI/env を解決した後の設定。作ったあとは変えない。"""

    percentage_matching: int = DEFAULT_PERCENTAGE_MATCHING
    one_line_match: bool = False
    debug: bool = False


@dataclass
class LineCounts:
    total_lines: int
    matching_lines: int


@dataclass(frozen=True)
class Verdict:
    """
    判定結果DTO。

    - detected: CFのログとみなしたか
    - percentage: 一致率（%、小数点以下切り捨て）
    - total_lines / matching_lines: 判定に使った行数
    """

    detected: bool
    percentage: int
    total_lines: int
    matching_lines: int


# -------------------------
# 走査・判定（コアロジック）
# -------------------------


def count_matching_lines(
    lines: Iterable[str],
    one_line_match: bool = False,
    matcher: LineMatcher = is_cf_app_log_line,
    logger: logging.Logger | None = None,
) -> LineCounts:
    """
    行を先頭から順に判定して、全体の行数と一致した行数を数える。

    仕様として守りたいこと：
    - 空行も1行として数える（一致はしない）
    - one_line_match のときは、最初に一致した行で読むのをやめる
    - list化しない（大きいログでもメモリを食いにくい）
    """
    total = 0
    matching = 0
    for lineno, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        total += 1
        if matcher(line):
            matching += 1
            if one_line_match:
                break
        elif logger is not None:
            logger.debug("line %d does not match: %r", lineno, line)
    return LineCounts(total_lines=total, matching_lines=matching)


def compute_percentage(counts: LineCounts) -> int:
    """一致率（切り捨て）。0行なら 0（ゼロ除算しない）。"""
    if counts.total_lines == 0:
        return 0
    return counts.matching_lines * 100 // counts.total_lines


def decide(counts: LineCounts, config: DetectorConfig) -> Verdict:
    """
    行数から最終判定を出す。

    - 空ファイルは常に「ちがう」（閾値 0 でも）
    - 一致率 >= 閾値 なら CF のログ（境界を含む）
    - one_line_match なら1行でも一致していれば CF のログ
    """
    percentage = compute_percentage(counts)
    if counts.total_lines == 0:
        detected = False
    else:
        detected = percentage >= config.percentage_matching or (
            config.one_line_match and counts.matching_lines > 0
        )
    return Verdict(
        detected=detected,
        percentage=percentage,
        total_lines=counts.total_lines,
        matching_lines=counts.matching_lines,
    )


def detect_lines(
    lines: Iterable[str],
    config: DetectorConfig,
    matcher: LineMatcher = is_cf_app_log_line,
    logger: logging.Logger | None = None,
) -> Verdict:
    counts = count_matching_lines(lines, one_line_match=config.one_line_match, matcher=matcher, logger=logger)
    verdict = decide(counts, config)
    if logger is not None:
        logger.debug("total number of lines: %d", verdict.total_lines)
        logger.debug("log lines matching: %d", verdict.matching_lines)
        logger.debug("percentage matching: %d", verdict.percentage)
    return verdict


def format_verdict(path: str, verdict: Verdict) -> str:
    if verdict.detected:
        return f"{path} is a CF application log [{verdict.percentage}% line matching]"
    return f"{path} is NOT CF application log [{verdict.percentage}% line matching]"


def exit_code_for(verdict: Verdict) -> int:
    return EXIT_DETECTED if verdict.detected else EXIT_NOT_DETECTED


# -------------------------
# CLIパース（I/O境界：入力）
# -------------------------


def percentage(value: str) -> int:
    """argparse の type 用。0〜100 の整数だけ通す。"""
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid percentage: {value!r} (expected an integer)") from None
    if not 0 <= n <= 100:
        raise argparse.ArgumentTypeError(f"invalid percentage: {n} (expected 0 to 100)")
    return n


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cf-app-log-detector",
        description="Try to detect log outputted by CF cli",
        allow_abbrev=False,
    )
    parser.add_argument(
        "-p",
        "--percentage-matching",
        dest="percentage_matching",
        metavar="PERCENTAGE_MATCHING",
        type=percentage,
        default=DEFAULT_PERCENTAGE_MATCHING,
        help=(
            "Percentage of line matching expected format for the file to be considered "
            f"an application log (default: {DEFAULT_PERCENTAGE_MATCHING})"
        ),
    )
    parser.add_argument(
        "--one-line-match",
        action="store_true",
        help="Consider the file to be CF app log if a single line matches expected format",
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable debugging")
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("log", metavar="LOG", help="Log file ('-' reads standard input)")
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


# -------------------------
# env適用（I/O境界：入力）
# -------------------------


def apply_env(
    args: argparse.Namespace,
    provided: set[str],
    logger: logging.Logger,
    environ: Mapping[str, str] | None = None,
) -> None:
    """
    環境変数の値を args に反映する（ただしCLI指定が優先）。

    対応する環境変数名：
      CFLOG_PERCENTAGE_MATCHING, CFLOG_ONE_LINE_MATCH, CFLOG_DEBUG

    CFLOG_PERCENTAGE_MATCHING が 0〜100 の整数でなければ ValueError。
    """
    if "--percentage-matching" not in provided:
        v = toolkit.get_env(ENV_PERCENTAGE_MATCHING, environ)
        if v is not None:
            try:
                args.percentage_matching = percentage(v)
            except argparse.ArgumentTypeError as exc:
                raise ValueError(f"{ENV_PERCENTAGE_MATCHING}: {exc}") from None

    if "--one-line-match" not in provided:
        v = toolkit.get_env(ENV_ONE_LINE_MATCH, environ)
        if v is not None:
            args.one_line_match = toolkit.parse_bool(v)

    if "--debug" not in provided:
        v = toolkit.get_env(ENV_DEBUG, environ)
        if v is not None:
            args.debug = toolkit.parse_bool(v)

    logger.debug("env applied (CLI overrides env)")


def config_from_args(args: argparse.Namespace) -> DetectorConfig:
    return DetectorConfig(
        percentage_matching=args.percentage_matching,
        one_line_match=args.one_line_match,
        debug=args.debug,
    )


def _log_level(debug: bool) -> int:
    return logging.DEBUG if debug else logging.WARNING


def resolve_effective_args(
    argv: list[str],
    environ: Mapping[str, str] | None = None,
) -> tuple[argparse.Namespace, logging.Logger]:
    """
    CLI/env を統合して「最終的に使う args」を確定する。

    env の値が壊れている場合は ValueError をそのまま上に投げる（main で終了コード2にする）。
    """
    args = parse_args(argv)
    provided = toolkit.parse_provided_options(argv, SHORT_OPTIONS)

    # まずはCLIのdebugで暫定loggerを作る（envでdebugが変わったら作り直す）
    logger = toolkit.setup_logger(LOGGER_NAME, _log_level(args.debug))
    apply_env(args, provided, logger, environ)

    logger = toolkit.setup_logger(LOGGER_NAME, _log_level(args.debug))
    return args, logger


def validate_args(args: argparse.Namespace) -> int:
    """
    入力検証。失敗したら終了コード（2）を返す。

    - 閾値は 0〜100（CLI は argparse で弾くが、env 経由の値もここで確かめる）
    - LOG が '-' 以外なら、存在するファイルであること
    """
    if not 0 <= args.percentage_matching <= 100:
        print(f"Error: percentage must be between 0 and 100: {args.percentage_matching}", file=sys.stderr)
        return EXIT_USAGE

    if args.log == "-":
        return 0

    p = Path(args.log).expanduser()
    if not p.exists():
        print(f"Error: log file does not exist: {args.log}", file=sys.stderr)
        return EXIT_USAGE
    if not p.is_file():
        print(f"Error: log path is not a file: {args.log}", file=sys.stderr)
        return EXIT_USAGE
    return 0


@contextmanager
def _open_lines(path: str) -> Iterator[TextIO]:
    """
    入力を「行の列」として開く。'-' なら stdin（閉じない）。

    - ファイルも stdin も UTF-8 として読み、壊れたバイトは置き換える（落とさない）
    - 行の区切りは \\n だけ（単独の \\r では区切らない）
    """
    if path == "-":
        buffer = getattr(sys.stdin, "buffer", None)
        if buffer is None:
            # テストで StringIO に差し替えた場合など
            yield sys.stdin
            return
        fp = io.TextIOWrapper(buffer, encoding="utf-8", errors="replace", newline="\n")
        try:
            yield fp
        finally:
            # stdin 本体は閉じない
            fp.detach()
        return
    with Path(path).expanduser().open("r", encoding="utf-8", errors="replace", newline="\n") as fp:
        yield fp


def main(argv: list[str] | None = None) -> int:
    """
    実行入口（テストからも呼べる形）。

    1) resolve_effective_args（設定解決）
    2) validate_args（入力検証）
    3) detect_lines（1行ずつ判定して集計）
    4) 判定結果を stderr に1行出して、終了コードを返す
    """
    if argv is None:
        argv = sys.argv[1:]

    try:
        args, logger = resolve_effective_args(argv)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_USAGE

    rc = validate_args(args)
    if rc != 0:
        return rc

    config = config_from_args(args)
    logger.debug(
        "read start: path=%s percentage_matching=%d one_line_match=%s",
        args.log,
        config.percentage_matching,
        config.one_line_match,
    )

    try:
        with _open_lines(args.log) as fp:
            verdict = detect_lines(fp, config, logger=logger)
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("failed to read log file: %s (%s)", args.log, exc)
        return EXIT_USAGE

    print(format_verdict(args.log, verdict), file=sys.stderr)
    return exit_code_for(verdict)
