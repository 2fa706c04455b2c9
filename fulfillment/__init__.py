"""注文フルフィルメント・サービス群"""
