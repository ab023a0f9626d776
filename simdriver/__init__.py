"""
simdriver — iOS シミュレータ UI 自動化ドライバ

UI 操作スクリプトをビルド済みの UI テストランナーへ渡して実行し、
アクションごとの結果を受け取る。
"""

__version__ = "0.1.0"
