import pytest

from core.exceptions import business_code_to_http_status
from core.response import error_response
from shared.codes import BusinessCode


@pytest.mark.parametrize(
    "code,status",
    [
        (BusinessCode.PARAM_VALIDATION_ERROR, 422),
        (BusinessCode.USER_ALREADY_EXISTS, 409),
        (BusinessCode.AUTHENTICATION_FAILED, 401),
        (BusinessCode.TOKEN_REUSE_DETECTED, 401),
        (BusinessCode.ACCOUNT_DISABLED, 403),
        (BusinessCode.PERMISSION_ERROR, 403),
        (BusinessCode.DATABASE_ERROR, 500),
        (BusinessCode.BUSINESS_ERROR, 400),
    ],
)
def test_business_code_maps_to_http_status(code, status):
    assert business_code_to_http_status(code) == status


def test_unknown_code_falls_back_to_bad_request():
    assert business_code_to_http_status(99999) == 400
    assert business_code_to_http_status(10000) == 400


def test_error_response_timestamp_is_utc_z():
    body = error_response(BusinessCode.TOKEN_INVALID, "Invalid token", "InvalidToken").model_dump(mode="json")

    assert body["data"] is None
    assert body["error"]["type"] == "InvalidToken"
    assert body["error"]["timestamp"].endswith("Z")
