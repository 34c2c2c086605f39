"""Run the upload server: ``python -m chunked_upload``."""

from chunked_upload.adapters.inbound.rest_api import run_server
from chunked_upload.infrastructure.container import get_container


def main() -> None:
    container = get_container()
    server = container.config.server
    run_server(host=server.host, port=server.port)


if __name__ == "__main__":
    main()
