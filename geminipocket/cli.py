"""geminipocket command line client.

Generate and edit images with Gemini and videos with Veo through a
geminipocket relay. Images are saved as PNG and videos as MP4, both with a
timestamp appended to the file name.

Examples:
  geminipocket generate "a sunset over mountains"
  geminipocket edit photo.png "add a rainbow"
  geminipocket generate-video "drone shot along a coastal road" --aspect-ratio 9:16
  geminipocket edit-video photo.png "make it dance and spin"
  geminipocket config set output_dir ~/Videos/AI
"""
import argparse
import getpass
import logging
import os
import sys
import time
from typing import Optional

from dotenv import load_dotenv

from . import __version__
from .artifacts import save_image, save_inline_video, save_video
from .client import RelayClient
from .config import SETTABLE_KEYS, ClientConfig
from .errors import GeminiPocketError, InvalidRequest
from .operation import Operation
from .poller import OperationFailed, OperationPoller

logger = logging.getLogger(__name__)

OK = "✓"
FAIL = "✗"


def _fail(message: str) -> int:
    print(f"{FAIL} {message}", file=sys.stderr)
    return 1


def _progress(operation: Operation):
    print(".", end="", flush=True)


def _video_poller(client: RelayClient, config: ClientConfig, args) -> OperationPoller:
    """Build the poll loop before anything is submitted so bad settings cost no job."""
    try:
        return OperationPoller(
            lambda name: client.check_video_status(name, inline=args.inline),
            interval=config.poll_interval,
            max_polls=config.max_polls,
            timeout=config.poll_timeout,
            on_progress=_progress,
            sleep=time.sleep,
        )
    except ValueError as exc:
        raise InvalidRequest(f"Invalid poll settings: {exc}") from exc


def _run_video_job(poller: OperationPoller, config: ClientConfig, args, operation_name: str, label: str) -> int:
    print(f"{OK} Started {label} (operation: {operation_name})")
    print("Waiting for the video", end="", flush=True)
    try:
        operation = poller.run(Operation(operation_name))
    except OperationFailed as exc:
        print()
        return _fail(f"Video {label} failed: {exc.message}")
    print()
    print(f"{OK} Video {label} completed!")

    try:
        if operation.video:
            path = save_inline_video(operation.video, args.output_dir, args.name, args.save)
        else:
            path = save_video(operation.result_locator, args.output_dir, args.name, args.save,
                              provider_api_key=config.resolve_provider_key())
    except GeminiPocketError as exc:
        return _fail(f"Video was generated but could not be saved: {exc.message}")
    print(f"{OK} Video saved to: {path}")
    return 0


def cmd_generate(client: RelayClient, config: ClientConfig, args) -> int:
    print(f"Generating image: {args.prompt}")
    response = client.generate_image(args.prompt)
    path = save_image(response["image"], args.output_dir, args.name, args.save)
    print(f"{OK} Image saved to: {path}")
    return 0


def cmd_edit(client: RelayClient, config: ClientConfig, args) -> int:
    if not os.path.isfile(args.image):
        return _fail(f"Image file not found: {args.image}")
    print(f"Editing {args.image} with prompt: {args.prompt}")
    response = client.edit_image(args.image, args.prompt)
    path = save_image(response["image"], args.output_dir, args.name, args.save)
    print(f"{OK} Edited image saved to: {path}")
    return 0


def cmd_generate_video(client: RelayClient, config: ClientConfig, args) -> int:
    poller = _video_poller(client, config, args)
    print(f"Generating video: {args.prompt}")
    operation_name = client.generate_video(args.prompt, args.negative_prompt, args.aspect_ratio, args.resolution)
    return _run_video_job(poller, config, args, operation_name, "generation")


def cmd_edit_video(client: RelayClient, config: ClientConfig, args) -> int:
    if not os.path.isfile(args.image):
        return _fail(f"Image file not found: {args.image}")
    poller = _video_poller(client, config, args)
    print(f"Editing video from image: {args.image}")
    print(f"Edit prompt: {args.prompt}")
    operation_name = client.edit_video(args.image, args.prompt, args.negative_prompt, args.aspect_ratio,
                                       args.resolution)
    return _run_video_job(poller, config, args, operation_name, "editing")


def cmd_health(client: RelayClient, config: ClientConfig, args) -> int:
    health = client.health()
    print(f"{OK} API is {health.get('status', 'unknown')}")
    timestamp = health.get("timestamp")
    if timestamp:
        checked = time.strftime("%Y-%m-%d %H:%M:%S UTC", time.gmtime(int(timestamp) / 1000))
        print(f"  Last checked: {checked}")
    return 0


def cmd_info(client: RelayClient, config: ClientConfig, args) -> int:
    info = client.info()
    print("API Information")
    print(f"  Name: {info.get('name')}")
    print(f"  Version: {info.get('version')}")
    print("  Endpoints:")
    for key, value in (info.get("endpoints") or {}).items():
        print(f"    • {key}: {value}")
    return 0


def cmd_config(client: Optional[RelayClient], config: ClientConfig, args) -> int:
    valid = ", ".join(SETTABLE_KEYS)
    if args.action == "set":
        try:
            config.set(args.key, args.value)
        except KeyError as exc:
            print(f"{FAIL} {exc.args[0]}", file=sys.stderr)
            print(f"\nValid keys: {valid}", file=sys.stderr)
            return 1
        except ValueError as exc:
            return _fail(f"Invalid value for {args.key}: {exc}")
        config.save()
        print(f"{OK} Config updated: {args.key} = {args.value}")
    elif args.action == "get":
        value = config.get(args.key)
        if value is None:
            print(f"{args.key}: (not set)")
            print(f"\nValid keys: {valid}")
        else:
            print(f"{args.key}: {value}")
    else:
        print("Configuration:")
        for key in SETTABLE_KEYS:
            value = config.get(key)
            if key in ("api_key", "provider_api_key") and value:
                value = value[:6] + "…"
            print(f"  {key}: {value if value is not None else '(not set)'}")
    return 0


def _read_credentials():
    email = input("Email: ").strip()
    password = getpass.getpass("Password: ")
    return email, password


def cmd_auth(client: RelayClient, config: ClientConfig, args) -> int:
    if args.action in ("register", "login"):
        email, password = _read_credentials()
        if not email or not password:
            return _fail("Email and password are required")
        if args.action == "register":
            print("Registering...")
            api_key = client.register(email, password)
        else:
            print("Logging in...")
            api_key = client.login(email, password)
        config.api_key = api_key
        config.email = email
        config.save()
        print(f"{OK} {'Registration' if args.action == 'register' else 'Login'} successful!")
        print(f"API Key: {api_key}")
        print("Your API key has been saved to the config.")
    elif args.action == "logout":
        config.api_key = None
        config.email = None
        config.save()
        print(f"{OK} Logged out successfully!")
        print("API key has been removed from config.")
    else:
        if config.email:
            print(f"{OK} Logged in")
            print(f"Email: {config.email}")
            if config.api_key:
                print("API Key: Configured")
        else:
            print(f"{FAIL} Not logged in")
            print("Use 'geminipocket auth login' to log in.")
    return 0


def _add_output_options(parser):
    parser.add_argument("-n", "--name", help="Custom filename (timestamp will be added)")
    parser.add_argument("-s", "--save", action="store_true", help="Save to current directory (overrides config)")


def _add_video_options(parser):
    parser.add_argument("--negative-prompt", dest="negative_prompt", help="Negative prompt to avoid certain elements")
    parser.add_argument("--aspect-ratio", dest="aspect_ratio", default="16:9", choices=["16:9", "9:16"])
    parser.add_argument("--resolution", default="720p", choices=["720p", "1080p"])
    parser.add_argument("--inline", action="store_true",
                        help="Have the relay download the finished video (no provider key needed locally)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="geminipocket",
        description="Generate and edit AI images and videos with Google Gemini",
        epilog="Examples:" + __doc__.split("Examples:", 1)[1],
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--api-url", dest="api_url", help="Relay URL (can also set GEMINI_API_URL env var)")
    parser.add_argument("-o", "--output", dest="output", help="Default output directory for generated files")
    parser.add_argument("--config", dest="config_path", help="Path to the config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log HTTP and polling details")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("generate", aliases=["gen"], help="Generate a new image from text description")
    p.add_argument("prompt")
    _add_output_options(p)
    p.set_defaults(handler=cmd_generate)

    p = sub.add_parser("edit", help="Transform an existing image using AI")
    p.add_argument("image", help="Path to the image file (PNG, JPG, GIF, WebP)")
    p.add_argument("prompt")
    _add_output_options(p)
    p.set_defaults(handler=cmd_edit)

    p = sub.add_parser("generate-video", aliases=["gen-video"], help="Generate a video from text description")
    p.add_argument("prompt")
    _add_output_options(p)
    _add_video_options(p)
    p.set_defaults(handler=cmd_generate_video)

    p = sub.add_parser("edit-video", help="Transform an existing image into a video using AI")
    p.add_argument("image", help="Path to the image file (PNG, JPG, GIF, WebP)")
    p.add_argument("prompt")
    _add_output_options(p)
    _add_video_options(p)
    p.set_defaults(handler=cmd_edit_video)

    p = sub.add_parser("config", help="Configure settings (API URL, output directory)")
    config_sub = p.add_subparsers(dest="action", required=True)
    cs = config_sub.add_parser("set", help="Update a configuration value")
    cs.add_argument("key")
    cs.add_argument("value")
    cg = config_sub.add_parser("get", help="Show a configuration value")
    cg.add_argument("key")
    config_sub.add_parser("list", help="Show all configuration values")
    p.set_defaults(handler=cmd_config)

    p = sub.add_parser("health", help="Check if the API is online and responding")
    p.set_defaults(handler=cmd_health)

    p = sub.add_parser("info", help="Show API version and available endpoints")
    p.set_defaults(handler=cmd_info)

    p = sub.add_parser("auth", help="Authentication commands (login, register, logout, status)")
    p.add_argument("action", choices=["register", "login", "logout", "status"])
    p.set_defaults(handler=cmd_auth)

    return parser


def main(argv=None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )

    try:
        config = ClientConfig.load(args.config_path)
    except ValueError as exc:
        return _fail(str(exc))

    args.output_dir = args.output or config.output_dir
    client = RelayClient(config.resolve_api_url(args.api_url), api_key=config.api_key)
    logger.info("Using relay at %s", client.api_url)

    try:
        return args.handler(client, config, args)
    except GeminiPocketError as exc:
        return _fail(f"Error: {exc.message}")
    except KeyboardInterrupt:
        print()
        return 130


if __name__ == "__main__":
    sys.exit(main())
