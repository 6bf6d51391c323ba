import logging
import os
import sys

from pipeline.config import ConfigValidationError, PipelineConfig, validate_config
from pipeline.runner import PipelineRunner, RunContext
from pipeline.services.container import DockerRuntime
from pipeline.stages import default_stages

logger = logging.getLogger("pipeline")


def main() -> int:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
    )

    try:
        cfg = PipelineConfig.from_env()
        validate_config(cfg)
    except ConfigValidationError as e:
        logger.error("Invalid pipeline configuration: %s", e)
        return 2

    logger.info("Run #%s: image=%s", cfg.run_id, cfg.image_ref)

    runtime = DockerRuntime(cfg.docker_bin, secrets=cfg.secrets)
    report = PipelineRunner(default_stages()).run(RunContext(config=cfg, runtime=runtime))

    print(report.summary(), flush=True)
    return report.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
