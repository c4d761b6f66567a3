"""바인드 값 마스킹 테스트."""

import sqlalchemy as sa

from query_repository.utils.masking import MASK, mask_parameters, summarize


class TestMaskParameters:
    """민감 바인드 값 마스킹 테스트."""

    def test_masks_sensitive_names(self):
        """비밀번호/토큰 이름의 값은 마스킹."""
        masked = mask_parameters({"email": "a@example.com", "password": "pw", "API_KEY": "k", "reset_token": "t"})
        assert masked == {"email": "a@example.com", "password": MASK, "API_KEY": MASK, "reset_token": MASK}

    def test_json_values(self):
        """JSON으로 바인딩되는 dict/list 안의 키도 마스킹."""
        masked = mask_parameters({"payload": {"secret": "s", "items": [{"token": "t", "id": 1}]}})
        assert masked == {"payload": {"secret": MASK, "items": [{"token": MASK, "id": 1}]}}

    def test_compiled_statement_params(self):
        """컴파일된 문장의 바인드 값 (위치 기반 포함)."""
        stmt = sa.insert(sa.table("users", sa.column("name"), sa.column("password"))).values(
            name=sa.literal("Alice"), password=sa.literal("hunter2")
        )
        masked = mask_parameters(stmt.compile().params)

        assert masked == {"name": "Alice", "password": MASK}

    def test_input_not_modified(self):
        """원본 매핑은 변경하지 않음."""
        params = {"password": "pw"}
        mask_parameters(params)
        assert params == {"password": "pw"}


class TestSummarize:
    """큰 값 요약 테스트."""

    def test_long_string(self):
        """긴 문자열은 잘라내고 길이 표시."""
        assert summarize("x" * 300) == "x" * 200 + "...(300 chars)"

    def test_binary(self):
        """바이너리는 크기만 표시."""
        assert summarize(b"\x00" * 16) == "<16 bytes>"

    def test_keeps_short_values(self):
        """짧은 값은 그대로."""
        assert summarize("short") == "short"
        assert summarize(12345) == 12345
