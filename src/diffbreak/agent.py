"""Core orchestrator for tag detection and upgrade analysis.

This module ties together all the components:
- URL resolution (repo_url.py)
- Evidence collection (context/)
- Prompt building (prompts/analyze_upgrade.py)
- Model interaction (llm.py)
- Reply validation and normalization (validation.py)

The analysis follows this flow:
1. Resolve the repository URL
2. Collect the comparison data for the tag window
3. Build the prompt from the evidence bundle
4. Call the model
5. Normalize the reply and stamp its metadata

Each request runs these steps strictly in sequence under one deadline.
If the deadline expires at any step, the request fails with
``TimedOutError`` and the remaining steps never run.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import UTC, datetime

from diffbreak.config import load_settings
from diffbreak.context.comparison import fetch_comparison_data
from diffbreak.context.github import GitHubClient, GitHubClientProtocol
from diffbreak.errors import DiffBreakError, InternalError, TimedOutError
from diffbreak.llm import LLMConfig, OllamaClient
from diffbreak.logging_config import get_logger, setup_logging
from diffbreak.prompts.analyze_upgrade import build_analysis_prompt
from diffbreak.repo_url import parse_repo_url
from diffbreak.schemas import (
    AnalysisResponse,
    AnalyzeRequest,
    DetectResponse,
    EvidenceBundle,
    Limits,
    Mode,
    RepoIdentity,
    RepoInfo,
)
from diffbreak.validation import validate_and_normalize_response

logger = get_logger(__name__)

DETECT_TIMEOUT = 10.0
ANALYZE_TIMEOUT = 60.0


class UpgradeAnalyzer:
    """Runs the detect and analyze pipelines.

    Stateless between calls; one instance serves concurrent requests.

    Usage:
        analyzer = UpgradeAnalyzer(GitHubClient(), OllamaClient())
        result = await analyzer.analyze(request)
    """

    def __init__(
        self,
        github: GitHubClientProtocol,
        llm: OllamaClient,
        detect_timeout: float = DETECT_TIMEOUT,
        analyze_timeout: float = ANALYZE_TIMEOUT,
    ) -> None:
        self.github = github
        self.llm = llm
        self.detect_timeout = detect_timeout
        self.analyze_timeout = analyze_timeout

    async def detect(self, repo_url: str) -> DetectResponse:
        """List every tag of the repository behind ``repo_url``.

        Raises:
            DiffBreakError: ``InvalidRepoURLError``, ``RepoNotFoundError``,
                ``RateLimitedError``, ``TimedOutError`` or ``InternalError``
        """
        identity = parse_repo_url(repo_url)
        tags = await self._run(self.github.list_tags(identity), self.detect_timeout)
        return DetectResponse(
            repo=RepoInfo(url=repo_url, owner=identity.owner, name=identity.name),
            tags=tags,
        )

    async def analyze(self, request: AnalyzeRequest) -> AnalysisResponse:
        """Run a full upgrade analysis for one tag window.

        Raises:
            DiffBreakError: One of the taxonomy kinds; nothing else escapes
        """
        identity = parse_repo_url(request.repo_url)
        log = logger.bind(
            repo_url=request.repo_url,
            from_tag=request.from_tag,
            to_tag=request.to_tag,
            mode=request.mode.value,
        )
        log.info("analysis_started", max_releases=request.max_releases)

        try:
            result = await self._run(self._analyze(request, identity), self.analyze_timeout)
        except DiffBreakError as exc:
            log.warning("analysis_failed", kind=exc.kind.value)
            raise

        log.info(
            "analysis_completed",
            risk_score=result.risk.score,
            risk_level=result.risk.level,
        )
        return result

    async def _analyze(self, request: AnalyzeRequest, identity: RepoIdentity) -> AnalysisResponse:
        data = await fetch_comparison_data(
            self.github,
            identity,
            request.from_tag,
            request.to_tag,
            request.max_releases,
            request.mode,
        )
        bundle = EvidenceBundle(
            repo=request.repo_url,
            from_tag=request.from_tag,
            to_tag=request.to_tag,
            release_notes=data.release_notes,
            commit_titles=data.commit_titles,
            changed_files=data.changed_files,
        )
        prompt = build_analysis_prompt(bundle)
        raw = await self.llm.generate(prompt)

        result = validate_and_normalize_response(raw)
        result.meta.repo.url = request.repo_url
        result.meta.from_tag = request.from_tag
        result.meta.to_tag = request.to_tag
        result.meta.generated_at = datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
        return result

    @staticmethod
    async def _run(coro, timeout: float):
        """Await ``coro`` under one deadline, keeping errors in the taxonomy."""
        try:
            async with asyncio.timeout(timeout):
                return await coro
        except DiffBreakError:
            raise
        except TimeoutError as exc:
            raise TimedOutError() from exc
        except Exception as exc:
            logger.error("unexpected_error", error=str(exc), exc_info=True)
            raise InternalError(str(exc)) from exc


def build_analyzer(settings=None, observer=None) -> UpgradeAnalyzer:
    """Wire an analyzer from ``Settings`` (loaded from the environment if None)."""
    settings = settings or load_settings()
    github = GitHubClient(
        token=settings.github_token,
        observer=observer,
        base_url=settings.github_api_url,
    )
    llm = OllamaClient(
        config=LLMConfig(
            base_url=settings.ollama_url,
            model=settings.model,
            temperature=settings.temperature,
            num_predict=settings.num_predict,
        ),
        observer=observer,
    )
    return UpgradeAnalyzer(
        github,
        llm,
        detect_timeout=settings.detect_timeout,
        analyze_timeout=settings.analyze_timeout,
    )


# ---------------------------------------------------------------------------
# CLI Entry Point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """Run one analysis from the command line and print the JSON result.

    Usage:
        diffbreak-analyze https://github.com/octo/hello v1.0.0 v1.1.0 --mode deep
    """
    parser = argparse.ArgumentParser(description="Analyze the risk of upgrading between two tags")
    parser.add_argument("repo_url", help="https://github.com/<owner>/<name>")
    parser.add_argument("from_tag", help="Tag you are upgrading from")
    parser.add_argument("to_tag", help="Tag you are upgrading to")
    parser.add_argument("--mode", choices=[m.value for m in Mode], default=Mode.FAST.value)
    parser.add_argument("--max-releases", type=int, default=0)
    parser.add_argument("--llm", help="Ollama base URL (e.g. http://localhost:11434)")
    parser.add_argument("--github", help="GitHub access token to evade rate limits a bit")
    parser.add_argument("--config", help="Path to a YAML settings file")
    args = parser.parse_args(argv)

    settings = load_settings(args.config)
    if args.llm:
        settings.ollama_url = args.llm
    if args.github:
        settings.github_token = args.github

    # stdout carries the JSON result only
    setup_logging(settings.environment, settings.log_level, stream=sys.stderr)

    request = AnalyzeRequest(
        repo_url=args.repo_url,
        from_tag=args.from_tag,
        to_tag=args.to_tag,
        mode=Mode(args.mode),
        limits=Limits(max_releases=args.max_releases),
    )

    analyzer = build_analyzer(settings)
    try:
        result = asyncio.run(analyzer.analyze(request))
    except DiffBreakError as exc:
        print(f"error: {exc.public_message}", file=sys.stderr)
        return 1

    print(result.model_dump_json(by_alias=True, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
