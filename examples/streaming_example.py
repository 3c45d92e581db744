"""
Streaming callbacks example using easy_http_core.

This example demonstrates intercepting body chunks as they arrive,
progress callbacks, writing straight to a file and awaiting a request
from asyncio code.
"""

import asyncio
import hashlib
import tempfile

from easy_http_core import HTTPCoreError, arequest, request


def hash_while_downloading():
    """Example: Hash the body chunk by chunk without buffering it."""
    print("=== Streaming Hash Example ===")

    digest = hashlib.sha256()

    def on_data(chunk):
        digest.update(chunk)
        return len(chunk)  # consumed here, nothing is buffered

    response = request("http://httpbin.org/bytes/65536", {"on_data": on_data, "timeout": 10})

    print(f"Status: {response.status_code}")
    print(f"Buffered body: {len(response.body)} bytes")
    print(f"SHA-256: {digest.hexdigest()}")


def progress_with_abort():
    """Example: Report progress and abort once enough has arrived."""
    print("=== Progress Callback Example ===")

    def on_progress(downloaded, download_total, uploaded, upload_total):
        print(f"  {downloaded}/{download_total} bytes")
        return downloaded > 32768  # non-zero aborts the transfer

    try:
        request("http://httpbin.org/stream-bytes/131072", {"on_progress": on_progress, "timeout": 10})
    except HTTPCoreError as e:
        print(f"Stopped: {e}")


def download_to_file():
    """Example: Write the body straight to a file."""
    print("=== Output File Example ===")

    with tempfile.TemporaryFile() as output:
        response = request("http://httpbin.org/bytes/4096", {"output_file": output, "timeout": 10})
        print(f"Status: {response.status_code}, body kept in memory: {response.body is not None}")
        print(f"File size: {output.tell()} bytes")


async def concurrent_requests():
    """Example: Await several requests concurrently from asyncio."""
    print("=== Asyncio Example ===")

    urls = [f"http://httpbin.org/get?n={i}" for i in range(3)]
    responses = await asyncio.gather(*(arequest(url, {"timeout": 10}) for url in urls))

    for url, response in zip(urls, responses):
        print(f"{url}: {response.status_code} ({len(response.body)} bytes)")


def main():
    """Run all streaming examples."""
    print("easy_http_core Streaming Examples")
    print("=" * 50)

    hash_while_downloading()
    progress_with_abort()
    download_to_file()
    asyncio.run(concurrent_requests())

    print("All examples completed successfully!")


if __name__ == "__main__":
    main()
