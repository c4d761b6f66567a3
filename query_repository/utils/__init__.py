"""유틸리티 패키지 — 예외, 로그 마스킹, 페이지네이션.

Utility package — Exceptions, log masking and pagination helpers.
"""
