# blockreader.py - logical lines and brace-delimited blocks

_QUOTES = "\"'`"


class BlockSyntaxError(Exception):
    pass


def _continued(line: str) -> bool:
    # a trailing "\\" is an escaped backslash, not a continuation
    return line.endswith("\\") and not line.endswith("\\\\")


def read_logical_line(source, prompt="", cont_prompt=""):
    """
    Read one line, merging the following ones while it ends with a backslash.
    Returns (line, has_more) like LineSource.next.
    """
    line, more = source.next(prompt)
    if not more:
        return "", False

    line = line.strip()
    while _continued(line):
        line = line[:-1].rstrip()
        nxt, more = source.next(cont_prompt)
        if not more:
            break
        line = f"{line} {nxt.strip()}"

    return line, True


def _read_group(source, cont_prompt):
    """Collect lines up to the matching "}"; returns (lines, closing line)."""
    depth = 1
    block = []
    while True:
        line, more = read_logical_line(source, cont_prompt, cont_prompt)
        if not more:
            raise BlockSyntaxError("unexpected end of input: missing '}'")

        if not line or line.startswith("#"):
            continue

        if line.startswith("}"):
            depth -= 1
            if depth == 0:
                return block, line
        if line.endswith("{"):
            depth += 1

        block.append(line)


def _split_one_liner(body, else_keyword):
    """Split "cmd else cmd" at the first else outside quotes."""
    if else_keyword:
        sep = f" {else_keyword} "
        quote = None
        for i, ch in enumerate(body):
            if quote:
                if ch == quote:
                    quote = None
                continue
            if ch in _QUOTES:
                quote = ch
            elif body.startswith(sep, i):
                return [body[:i].strip()], [body[i + len(sep):].strip()]
    return [body], None


def read_block(source, header, else_keyword="", cont_prompt=""):
    """
    Read the body (and optional else body) of a construct whose header line
    was header. Returns (block, else_block); else_block is None when absent.
    """
    header = header.strip()
    if not header:
        raise BlockSyntaxError("missing body")

    if not header.endswith("{"):
        # one-line body: variables meant for execution time come escaped
        return _split_one_liner(header.replace("\\$", "$"), else_keyword)

    if header != "{":
        raise BlockSyntaxError(f"unexpected command before block: {header!r}")

    block, closing = _read_group(source, cont_prompt)

    rest = closing[1:].strip()
    if not rest or rest.startswith("#"):
        return block, None

    if not else_keyword or not rest.startswith(else_keyword):
        raise BlockSyntaxError(f"expected {else_keyword or 'end of block'!r}, got {rest!r}")

    rest = rest[len(else_keyword):].strip()
    if rest != "{":
        raise BlockSyntaxError(f"expected '{{' after {else_keyword!r}, got {rest!r}")

    else_block, _ = _read_group(source, cont_prompt)
    return block, else_block
