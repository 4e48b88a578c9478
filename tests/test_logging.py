import logging

from app.core.logging import PIISafeFilter


def _logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.filters = []
    logger.addFilter(PIISafeFilter())
    return logger


def test_pii_filter_redacts_email_and_cpf(caplog):
    logger = _logger("test.pii")

    with caplog.at_level(logging.INFO, logger="test.pii"):
        logger.info("Contact maria.souza@example.com CPF 123.456.789-09")

    assert "maria.souza@example.com" not in caplog.text
    assert "123.456.789-09" not in caplog.text
    assert "[REDACTED]" in caplog.text


def test_pii_filter_redacts_phone_in_args(caplog):
    logger = _logger("test.phone")

    with caplog.at_level(logging.INFO, logger="test.phone"):
        logger.info("Calling %s", "+5511987654321")

    assert "+5511987654321" not in caplog.text
    assert "[REDACTED]" in caplog.text


def test_pii_filter_redacts_recipient_assignment(caplog):
    logger = _logger("test.recipient")

    with caplog.at_level(logging.INFO, logger="test.recipient"):
        logger.info("dispatch recipient_name=Maria for notification 7")

    assert "Maria" not in caplog.text
    assert "recipient_name=[REDACTED]" in caplog.text
    assert "notification 7" in caplog.text


def test_pii_filter_keeps_ids_and_hashes(caplog):
    logger = _logger("test.ids")
    digest = "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"

    with caplog.at_level(logging.INFO, logger="test.ids"):
        logger.info("Notification %s hash %s", 42, digest)

    assert "Notification 42" in caplog.text
    assert digest in caplog.text
