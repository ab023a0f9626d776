"""
simdriver CLI エントリポイント

python -m simdriver で CLI を起動する。

使用例:
  python -m simdriver devices
  python -m simdriver run flows/login.yaml --record recordings/login.mov
"""

from .cli import app

app(prog_name="simdriver")
