"""
Tiny calculator built on argbind.

    $ python main.py sum 4 2
    6
    $ python main.py --diff=true 4 2
    2
    $ python main.py --help
"""
from rich import print

from argbind import Argument, Flag, Kind, command, invoke


def operands(verb):
    return [
        Argument("x", Kind.INTEGER, f"first operand in {verb} operation"),
        Argument("y", Kind.INTEGER, f"second operand in {verb} operation"),
    ]


@command(
    arguments=operands("sum"),
    exclusive=[[
        Flag("sum", "s", Kind.BOOL, "do '+' arithmetic operation"),
        Flag("diff", "d", Kind.BOOL, "do '-' arithmetic operation"),
    ]],
    shell=True,
    colorful=True,
)
def calc(context):
    """do some basic arithmetic operations"""
    x, y = context.arguments["x"], context.arguments["y"]
    if context.flags["diff"]:
        return x - y
    return x + y


@calc.command(arguments=operands("sum"))
def sum(context):
    """calculate sum of two integers"""
    return context.arguments["x"] + context.arguments["y"]


@calc.command(arguments=operands("diff"))
def diff(context):
    """calculate difference between two integers"""
    return context.arguments["x"] - context.arguments["y"]


if __name__ == '__main__':
    if (result := invoke(calc)) is not None:
        print(result)
