"""CLI utility to analyze a file of comments, one per line."""
from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from commentlens.logging import configure_logging
from commentlens.models.analysis import AnalysisMethod
from commentlens.services.analysis import AnalysisService


async def main(path: Path, method: AnalysisMethod, prompt: str) -> None:
    configure_logging()
    texts = [line.strip() for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]
    service = AnalysisService()
    result = await service.analyze(texts, analysis_prompt=prompt, method=method)
    print(result.model_dump_json(indent=2))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("path", type=Path)
    parser.add_argument("--method", choices=[m.value for m in AnalysisMethod], default=AnalysisMethod.GENERATIVE.value)
    parser.add_argument("--prompt", default="")
    args = parser.parse_args()
    asyncio.run(main(args.path, AnalysisMethod(args.method), args.prompt))
