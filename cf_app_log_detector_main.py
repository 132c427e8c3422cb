"""
cf-app-log-detector のエントリーポイント（薄いラッパー）

- import される「実装本体」（cf_app_log_detector.py）と、CLI実行の「入口」を分離する
- テストは `cf_app_log_detector.py` を直接 import して行う（副作用の少ない形）
"""

from __future__ import annotations

import sys

if __name__ == "__main__":
    from cf_app_log_detector import main

    raise SystemExit(main(sys.argv[1:]))
