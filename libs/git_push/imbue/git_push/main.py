import click

from imbue.git_push.cli import push
from imbue.git_push.cli import validate


@click.group(name="git-push")
def cli() -> None:
    """Push a build's commits back to its git remote, merging whatever landed there in the meantime."""


cli.add_command(push)
cli.add_command(validate)


def main() -> None:
    cli()
