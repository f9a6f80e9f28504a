"""Entry point for the release deployer."""

import asyncio

from release_deployer import __version__
from release_deployer.config import get_settings, load_config
from release_deployer.github import GitHubReleaseClient
from release_deployer.logging import get_logger, setup_logging
from release_deployer.updater import UpdateRunner


async def run() -> None:
    """Load configuration and run the update loop."""
    setup_logging()
    log = get_logger("release_deployer.main")

    settings = get_settings()
    config = load_config(settings.config_file)
    log.info(
        "starting_release_deployer",
        version=__version__,
        environment=settings.environment,
        deploy_dir=str(config.deploy_dir),
        targets=[target.name for target in config.targets],
    )
    if config.unsafe_skip_signature_verification:
        log.warning("signature_verification_disabled")

    async with GitHubReleaseClient(
        token=settings.github_api_token.get_secret_value(),
        base_url=settings.github_api_url,
        timeout=settings.http_timeout,
    ) as client:
        runner = UpdateRunner(config, client)
        runner.prepare()
        if settings.run_once:
            await runner.run_once()
        else:
            await runner.run_forever()


def main() -> None:
    """Start the release deployer."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
