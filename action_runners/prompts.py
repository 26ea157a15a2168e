"""
Interactive prompts used by setup and removal.
"""

import getpass


def prompt_token(prompt: str = "Please enter your GitHub runner registration token: ") -> str:
    """Read a token without echoing it"""
    return getpass.getpass(prompt).strip()


def confirm(question: str, default: bool = False) -> bool:
    """
    Ask a yes/no question on the terminal

    Args:
        question: Question text, without the (y/N) suffix
        default: Answer used when the user just presses enter

    Returns:
        True for y/Y (or default on empty input)
    """
    suffix = '(Y/n)' if default else '(y/N)'
    try:
        answer = input(f"{question} {suffix} ").strip()
    except EOFError:
        return default
    if not answer:
        return default
    return answer in ('y', 'Y')
