"""Build an image from Python instead of a Buildfile.

The builder takes the same settings as the ``builder`` table of a Buildfile.
Provisioners and post-processors are created directly.
"""

import argparse

from imagebuilder.builder import Builder
from imagebuilder.engine import create_driver
from imagebuilder.logging import configure_logging
from imagebuilder.postprocessors import TagPostProcessor
from imagebuilder.provisioners import ShellProvisioner


def main():
    parser = argparse.ArgumentParser(description="Build and tag a small image")
    parser.add_argument("--image", default="ubuntu:24.04", help="Base image.")
    parser.add_argument("--repository", default="example/hello", help="Repository to tag.")
    parser.add_argument("--docker", default="docker", help="Engine executable.")
    args = parser.parse_args()

    configure_logging()

    driver = create_driver("docker", executable=args.docker)
    builder = Builder(driver=driver)
    builder.prepare({"image": args.image, "commit": True, "changes": ["CMD [\"cat\", \"/hello\"]"]})

    provisioners = [ShellProvisioner(inline=["echo 'Hello from imagebuilder' > /hello"])]
    artifact = builder.run(provisioners)
    if artifact is None:
        return

    artifact = TagPostProcessor(driver, {"repository": args.repository}).post_process(artifact)
    print(artifact)


if __name__ == "__main__":
    main()
