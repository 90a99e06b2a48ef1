# BladeForge: Geometric Algebra Code Generator
# Copyright (C) 2026 Eunkyum Kim <nemonanconcode@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
#
# This project is fully open-source, including for commercial use.
# We believe Geometric Algebra is the future of AI, and we want
# the industry to build upon this "unbending" paradigm.

"""BladeForge CLI Entry Point. Describe an algebra, get source.

Reads the algebra, types and operations from the Hydra config, runs the
batch through every backend and writes the artifacts plus a manifest.
"""

import sys

import hydra
from hydra.utils import to_absolute_path
from omegaconf import DictConfig

from codegen.pipeline import CodegenPipeline
from codegen.request import load_request
from core.config import CodegenConfig
from log import get_logger

logger = get_logger(__name__)


@hydra.main(version_base=None, config_path="pkg://conf", config_name="config")
def main(cfg: DictConfig):
    """The Boss. Delegates the work.

    Args:
        cfg (DictConfig): The plan.
    """
    config = CodegenConfig.from_cfg(cfg.get('codegen'))
    request = load_request(cfg, config.max_generators)

    pipeline = CodegenPipeline(request.table, config, request.types.values())
    report = pipeline.run(request.descriptors, request.diagnostics)

    output = cfg.get('output', {})
    output_dir = to_absolute_path(output.get('dir', 'generated'))
    pipeline.write(report, output_dir)

    if report.internal_errors:
        logger.error(f"{len(report.internal_errors)} internal error(s); please report them")
    if not report.ok and output.get('fail_on_error', False):
        sys.exit(1)


if __name__ == "__main__":
    main()
