"""
Basic client example using easy_http_core.

This example demonstrates blocking requests, requests running on a
worker that are polled for progress, and cancellation.
"""

import logging
import time

from easy_http_core import (
    CancelledError,
    HTTPCoreError,
    async_request,
    request,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def simple_get_request():
    """Demonstrate a simple GET request."""
    logger.info("Making simple GET request...")

    response = request("http://httpbin.org/get", {"timeout": 10})
    logger.info(f"Response status: {response.status_code}")
    logger.info(f"Response body length: {len(response.body)} bytes")
    logger.info(f"Content-Type: {response.get_header('Content-Type')}")


def post_request_with_body():
    """Demonstrate a POST request with body and headers."""
    logger.info("Making POST request with body...")

    response = request(
        "http://httpbin.org/post",
        {
            "method": "POST",
            "body": '{"message": "Hello, World!"}',
            "headers": {"Content-Type": "application/json"},
            "timeout": 10,
        },
    )
    logger.info(f"Response status: {response.status_code}")
    logger.info(f"Response body: {response.text[:200]}...")


def follow_redirects():
    """Demonstrate redirect handling."""
    logger.info("Following redirects...")

    response = request(
        "http://httpbin.org/redirect/2",
        {"follow_redirects": True, "max_redirects": 5, "timeout": 10},
    )
    logger.info(f"Final status: {response.status_code}")
    logger.info(f"Location headers seen: {response.headers.get_all('Location')}")


def poll_running_request():
    """Demonstrate polling a request while its worker runs."""
    logger.info("Polling a running request...")

    with async_request("http://httpbin.org/bytes/102400", {"timeout": 10}) as unit:
        while not unit.is_done() and unit.error is None:
            progress = unit.progress()
            logger.info(f"Downloaded {progress.downloaded}/{progress.download_total} bytes")
            time.sleep(0.1)

        response = unit.response()
        logger.info(f"Done: {len(response.body)} bytes, metrics: {unit.metrics}")


def cancel_request():
    """Demonstrate cancelling a slow request."""
    logger.info("Cancelling a slow request...")

    with async_request("http://httpbin.org/delay/10") as unit:
        time.sleep(0.5)
        unit.cancel()
        try:
            unit.response()
        except CancelledError:
            logger.info(f"Request cancelled, state: {unit.state.value}")


def main():
    """Run all examples."""
    logger.info("Starting easy_http_core client examples...")

    examples = [
        simple_get_request,
        post_request_with_body,
        follow_redirects,
        poll_running_request,
        cancel_request,
    ]

    for example in examples:
        try:
            example()
        except HTTPCoreError as e:
            logger.error(f"Example {example.__name__} failed: {e}")

    logger.info("All examples completed!")


if __name__ == "__main__":
    main()
