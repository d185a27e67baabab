import logging

from refresher.logging_filters import (
    NOISY_LOGGERS,
    SuppressHealthCheckAccessLog,
    configure_logging,
    install_uvicorn_access_log_filters,
)


def access_record(msg: str, args: tuple) -> logging.LogRecord:
    return logging.LogRecord(
        name="uvicorn.access",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=args,
        exc_info=None,
    )


def test_suppress_healthcheck_access_log_by_args() -> None:
    record = access_record(
        '%s - "%s %s HTTP/%s" %s', ("127.0.0.1:12345", "GET", "/health", "1.1", 200)
    )
    assert SuppressHealthCheckAccessLog().filter(record) is False


def test_suppress_healthcheck_with_query_string() -> None:
    record = access_record(
        '%s - "%s %s HTTP/%s" %s', ("127.0.0.1:12345", "GET", "/health?check=1", "1.1", 200)
    )
    assert SuppressHealthCheckAccessLog().filter(record) is False


def test_suppress_healthcheck_access_log_by_message_fallback() -> None:
    record = access_record('127.0.0.1:12345 - "GET /health HTTP/1.1" 200 OK', ())
    assert SuppressHealthCheckAccessLog().filter(record) is False


def test_refresh_access_log_not_suppressed() -> None:
    record = access_record(
        '%s - "%s %s HTTP/%s" %s',
        ("127.0.0.1:12345", "POST", "/api/refresh/chunk/run", "1.1", 200),
    )
    assert SuppressHealthCheckAccessLog().filter(record) is True


def test_install_does_not_duplicate_filter() -> None:
    logger = logging.getLogger("uvicorn.access")
    logger.filters.clear()

    install_uvicorn_access_log_filters()
    install_uvicorn_access_log_filters()

    matches = [f for f in logger.filters if isinstance(f, SuppressHealthCheckAccessLog)]
    assert len(matches) == 1


def test_configure_logging_quiets_client_libraries() -> None:
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG)

    configure_logging()

    for name in NOISY_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING
