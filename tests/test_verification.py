"""Tests for public booking one-time codes."""

from app.services.verification import generate_code, hash_code, verify_code


def test_code_is_six_digits():
    for _ in range(50):
        code = generate_code()
        assert len(code) == 6
        assert code.isdigit()


def test_hash_and_verify():
    code = "042917"
    code_hash = hash_code(code)

    assert code_hash != code
    assert verify_code(code, code_hash)
    assert not verify_code("042918", code_hash)


def test_verify_without_hash_fails():
    assert not verify_code("123456", None)
    assert not verify_code("123456", "")
