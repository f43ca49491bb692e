"""Command line interface for face verification and search."""
import argparse
import asyncio
import json
import sys
from typing import List, Optional

from pydantic import BaseModel

from faceverify import __version__
from faceverify.core.container import ServiceContainer
from faceverify.core.exceptions import FaceRecognitionError
from faceverify.core.logging import get_logger, setup_logging
from faceverify.domain.value_objects.recognition import FindMode, RepresentMode

logger = get_logger(__name__)


def error_record(error: FaceRecognitionError) -> dict:
    """Serializable form of a pipeline error."""
    return {
        "error": type(error).__name__,
        "message": str(error),
        "details": error.details,
    }


async def run_command(args: argparse.Namespace, container: ServiceContainer) -> BaseModel:
    """Run one subcommand against an initialized container."""
    if args.command == "verify":
        return await container.pipeline.verify(args.image1, args.image2)
    if args.command == "represent":
        return await container.pipeline.represent(args.image, mode=args.mode)
    if args.command == "find":
        return await container.face_matching_service.find(
            args.image,
            mode=FindMode.RANKED if args.ranked else FindMode.VERIFIED,
            top_k=args.top_k,
        )
    if args.command == "index":
        return await container.face_indexing_service.build_from_directory(
            args.directory,
            persist=not args.no_persist,
        )
    raise ValueError(f"Unknown command: {args.command}")


async def execute(args: argparse.Namespace, container: Optional[ServiceContainer] = None) -> int:
    """
    Initialize the services, run the command and print its JSON result.

    Returns:
        Process exit code: 0 on success, 1 on a face recognition error
    """
    container = container or ServiceContainer()
    try:
        await container.initialize()
        result = await run_command(args, container)
    except FaceRecognitionError as e:
        logger.error("Command failed", command=args.command, error=str(e), error_type=type(e).__name__)
        print(json.dumps(error_record(e), default=str))
        return 1
    finally:
        await container.cleanup()

    print(result.model_dump_json(indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="faceverify",
        description="Verify faces, extract embeddings and search a reference collection",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    verify = subparsers.add_parser("verify", help="Decide whether two images show the same person")
    verify.add_argument("image1", help="Path to the first image")
    verify.add_argument("image2", help="Path to the second image")

    represent = subparsers.add_parser("represent", help="Print the embeddings of the faces in an image")
    represent.add_argument("image", help="Path to the image file")
    represent.add_argument(
        "--mode",
        choices=[mode.value for mode in RepresentMode],
        default=None,
        help="Embed all faces or only the top-ranked one (default: REPRESENT_MODE)",
    )

    find = subparsers.add_parser("find", help="Search the indexed collection for the face in an image")
    find.add_argument("image", help="Path to the query image")
    find.add_argument(
        "--ranked",
        action="store_true",
        help="Return the nearest entries even when they exceed the model threshold",
    )
    find.add_argument("--top-k", type=int, default=None, help="Maximum number of matches (0 for no limit)")

    index = subparsers.add_parser("index", help="Build the search index from a directory of reference images")
    index.add_argument("directory", help="Directory of reference images, one folder per identity")
    index.add_argument(
        "--no-persist",
        action="store_true",
        help="Don't append the new embeddings to the embedding store",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    setup_logging()
    sys.exit(asyncio.run(execute(args)))


if __name__ == "__main__":
    main()
