"""
Tests for ServiceResult and BaseService.
"""

from __future__ import annotations

import logging

import pytest

from authentication.models import User
from core.exceptions import BaseApplicationError
from core.services import BaseService, ServiceResult


class SampleService(BaseService):
    pass


class TestServiceResult:
    def test_success_is_truthy(self):
        result = ServiceResult.success({"id": 1})

        assert result
        assert result.to_response() == {"success": True, "data": {"id": 1}}

    def test_failure_is_falsy(self):
        result = ServiceResult.failure("Nope", error_code="NOT_ELIGIBLE", details={"payment_id": "p1"})

        assert not result
        assert result.to_response() == {
            "success": False,
            "error": "Nope",
            "error_code": "NOT_ELIGIBLE",
            "details": {"payment_id": "p1"},
        }

    def test_failure_response_omits_empty_fields(self):
        assert ServiceResult.failure("Nope").to_response() == {"success": False, "error": "Nope"}

    def test_from_error_keeps_code_and_details(self):
        error = BaseApplicationError("Held elsewhere", error_code="LOCK_ACQUISITION_FAILED", details={"key": "k"})

        result = ServiceResult.from_error(error)

        assert result.error == "Held elsewhere"
        assert result.error_code == "LOCK_ACQUISITION_FAILED"
        assert result.details == {"key": "k"}

    def test_from_error_without_details(self):
        assert ServiceResult.from_error(BaseApplicationError("x")).details is None

    def test_from_exception_uses_class_name(self):
        result = ServiceResult.from_exception(ValueError("bad value"))

        assert result.error == "bad value"
        assert result.error_code == "VALUEERROR"

    def test_map(self):
        assert ServiceResult.success(2).map(lambda n: n * 10).data == 20
        failed = ServiceResult.failure("x")
        assert failed.map(lambda n: n * 10) is failed


class TestBaseService:
    def test_logger_is_named_after_service(self):
        assert SampleService.get_logger().name == f"{__name__}.SampleService"

    def test_handle_application_error(self):
        result = SampleService.handle_exception(
            BaseApplicationError("Not allowed", error_code="NOT_ELIGIBLE"),
            context="release",
            log_level=logging.WARNING,
        )

        assert result.error_code == "NOT_ELIGIBLE"
        assert result.error == "Not allowed"

    def test_handle_unexpected_error(self):
        result = SampleService.handle_exception(RuntimeError("boom"))

        assert result.error_code == "RUNTIMEERROR"

    @pytest.mark.django_db
    def test_atomic_rolls_back_inner_block(self):
        with SampleService.atomic():
            User.objects.create_user(email="kept@example.com")
            with pytest.raises(RuntimeError):
                with SampleService.atomic():
                    User.objects.create_user(email="rolled-back@example.com")
                    raise RuntimeError("inner")

        assert list(User.objects.values_list("email", flat=True)) == ["kept@example.com"]
