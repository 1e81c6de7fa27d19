from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from reportbot.dependencies import Container
from reportbot.models.schemas import CompanyContext, GenerateReportRequest, RawUpload
from reportbot.services.prompt_builder import build_user_prompt

SAMPLE_CSV = (
    "region,quarter,units,revenue\n"
    "east,Q1,120,48000\n"
    "east,Q2,135,54000\n"
    "west,Q1,90,36000\n"
    '"north, coastal",Q2,60,24000\n'
).encode("utf-8")


async def main(generate: bool) -> None:
    container = Container()
    try:
        parsed = await container.documents.parse_upload("sample_sales.csv", "text/csv", SAMPLE_CSV)
        print(json.dumps(parsed.model_dump(by_alias=True, exclude={"file"}), ensure_ascii=False, indent=2))

        upload = RawUpload(file_name="sample_sales.csv", content_type="text/csv", content=SAMPLE_CSV)
        context = await container.normalizer.normalize_uploads([upload])
        print(build_user_prompt("Summarize regional sales performance", context, include_graphs=True))

        if generate:
            res = await container.reports.generate(
                GenerateReportRequest(
                    query="Summarize regional sales performance",
                    company=CompanyContext(id="sample", name="Sample Co", industry="retailer"),
                    include_graphs=True,
                    raw_files=[upload],
                )
            )
            print(json.dumps(res.model_dump(by_alias=True), ensure_ascii=False, indent=2))
    finally:
        await container.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Parse a sample CSV and optionally generate a report")
    parser.add_argument("--generate", action="store_true", help="Call the configured LLM provider")
    asyncio.run(main(parser.parse_args().generate))
