"""
Flowkit - Cadence Program Analysis

Scans Cadence source for the facts the engine needs: imports, the
declared contract name and the transaction's prepare arity. Imports are
rewritten textually and the source is rescanned afterwards.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union

from ..cadence import Value
from ..constants import CRYPTO_CONTRACT
from ..errors import CadenceParseError, ContractNameError, TransactionError, UnresolvedImportError
from ..models import Address


class ImportKind(Enum):
    """How an import names its target."""
    FILE_PATH = "file"
    IDENTIFIER = "identifier"


@dataclass(frozen=True)
class Import:
    """A symbolic import that still needs an address."""
    token: str
    kind: ImportKind
    names: Tuple[str, ...] = ()


@dataclass
class Script:
    """Source code plus the arguments and location it runs with."""
    code: bytes
    args: List[Value] = field(default_factory=list)
    location: str = ""

    def program(self) -> "Program":
        return Program(self.code, self.args, self.location)


# =============================================================================
# Scanner
# =============================================================================

@dataclass
class _Token:
    kind: str        # ident, string, address, number, punct
    text: str
    line: int
    depth: int       # brace depth before this token
    nesting: int     # paren/bracket depth before this token
    start: int = 0   # character offsets in the decoded source
    end: int = 0


@dataclass
class _ImportStatement:
    names: Tuple[str, ...]
    start: int
    end: int
    imports: List[Import] = field(default_factory=list)
    address: bool = False    # import X from 0x...
    bare: bool = False       # import X, Y


_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {")", "]", "}"}
_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_NUMBER = re.compile(r"0x[0-9a-fA-F_]+|0b[01_]+|0o[0-7_]+|[0-9][0-9_]*(?:\.[0-9_]+)?")


def _scan(code: str, location: str = "") -> List[_Token]:
    """
    Split source into tokens, skipping whitespace, comments and the
    contents of string literals.

    Raises:
        CadenceParseError: On unterminated comments or strings and on
            unbalanced brackets.
    """
    tokens: List[_Token] = []
    stack: List[str] = []
    line = 1
    i = 0
    n = len(code)

    while i < n:
        ch = code[i]

        if ch == "\n":
            line += 1
            i += 1
            continue
        if ch.isspace():
            i += 1
            continue

        if code.startswith("//", i):
            end = code.find("\n", i)
            i = n if end < 0 else end
            continue

        if code.startswith("/*", i):
            start_line = line
            level = 0
            while i < n:
                if code.startswith("/*", i):
                    level += 1
                    i += 2
                elif code.startswith("*/", i):
                    level -= 1
                    i += 2
                    if level == 0:
                        break
                else:
                    if code[i] == "\n":
                        line += 1
                    i += 1
            if level != 0:
                raise CadenceParseError("unterminated block comment", location, start_line)
            continue

        depth = stack.count("{")
        nesting = len(stack) - depth

        if ch == '"':
            j = i + 1
            chars = []
            while j < n and code[j] != '"':
                if code[j] == "\n":
                    raise CadenceParseError("unterminated string literal", location, line)
                if code[j] == "\\" and j + 1 < n:
                    chars.append(code[j:j + 2])
                    j += 2
                    continue
                chars.append(code[j])
                j += 1
            if j >= n:
                raise CadenceParseError("unterminated string literal", location, line)
            tokens.append(_Token("string", "".join(chars), line, depth, nesting, i, j + 1))
            i = j + 1
            continue

        match = _IDENT.match(code, i)
        if match:
            tokens.append(_Token("ident", match.group(), line, depth, nesting, *match.span()))
            i = match.end()
            continue

        match = _NUMBER.match(code, i)
        if match:
            text = match.group()
            kind = "address" if text.startswith("0x") else "number"
            tokens.append(_Token(kind, text, line, depth, nesting, *match.span()))
            i = match.end()
            continue

        if ch in _OPENERS:
            stack.append(ch)
        elif ch in _CLOSERS:
            if not stack or _OPENERS[stack[-1]] != ch:
                raise CadenceParseError(f"unexpected '{ch}'", location, line)
            stack.pop()
        tokens.append(_Token("punct", ch, line, depth, nesting, i, i + 1))
        i += 1

    if stack:
        raise CadenceParseError(f"unclosed '{stack[-1]}'", location, line)
    return tokens


def _matching(tokens: List[_Token], start: int) -> int:
    """Index of the bracket closing the one at ``start``."""
    opener = tokens[start].text
    closer = _OPENERS[opener]
    level = 0
    for i in range(start, len(tokens)):
        token = tokens[i]
        if token.kind != "punct":
            continue
        if token.text == opener:
            level += 1
        elif token.text == closer:
            level -= 1
            if level == 0:
                return i
    return len(tokens) - 1


def _is_top_level(token: _Token) -> bool:
    return token.depth == 0 and token.nesting == 0


# =============================================================================
# Program
# =============================================================================

class Program:
    """
    Cadence source with cached scan results.

    Example:
        program = Program(b'import A from "./A.cdc"\\naccess(all) contract B {}', location="./B.cdc")
        program.imports()      # [Import(token="./A.cdc", kind=FILE_PATH, names=("A",))]
        program.name()         # "B"
        program.replace_import("./A.cdc", Address.from_hex("01"))
    """

    def __init__(self, code: Union[bytes, str], args: Optional[List[Value]] = None, location: str = ""):
        self._code = code.encode() if isinstance(code, str) else bytes(code)
        self.args = list(args or [])
        self.location = location
        self._tokens: List[_Token] = []
        self.reload()

    @classmethod
    def from_script(cls, script: Script) -> "Program":
        return cls(script.code, script.args, script.location)

    @property
    def code(self) -> bytes:
        return self._code

    def reload(self) -> None:
        """Rescan the current code."""
        try:
            text = self._code.decode()
        except UnicodeDecodeError as e:
            raise CadenceParseError(f"source is not valid UTF-8: {e}", self.location)
        self._tokens = _scan(text, self.location)

    # =========================================================================
    # Imports
    # =========================================================================

    def _statements(self) -> List[_ImportStatement]:
        """Top-level import statements with their spans in the source."""
        statements: List[_ImportStatement] = []
        tokens = self._tokens
        i = 0
        while i < len(tokens):
            token = tokens[i]
            if not (token.kind == "ident" and token.text == "import" and _is_top_level(token)):
                i += 1
                continue

            start = token.start
            i += 1
            if i < len(tokens) and tokens[i].kind == "string":
                name = tokens[i].text
                statements.append(_ImportStatement(
                    (name,), start, tokens[i].end,
                    [] if name == CRYPTO_CONTRACT else [Import(name, ImportKind.IDENTIFIER, (name,))],
                ))
                i += 1
                continue

            names = []
            end = start
            while i < len(tokens) and tokens[i].kind == "ident" and tokens[i].text not in ("from", "import"):
                names.append(tokens[i].text)
                end = tokens[i].end
                i += 1
                if i < len(tokens) and tokens[i].text == ",":
                    i += 1
                    continue
                break

            if i < len(tokens) and tokens[i].kind == "ident" and tokens[i].text == "from":
                source = tokens[i + 1] if i + 1 < len(tokens) else None
                i += 2
                if source is None:
                    continue
                imports = []
                if source.kind == "string":
                    imports.append(Import(source.text, ImportKind.FILE_PATH, tuple(names)))
                elif source.kind == "ident" and source.text != CRYPTO_CONTRACT:
                    imports.append(Import(source.text, ImportKind.IDENTIFIER, tuple(names)))
                statements.append(_ImportStatement(tuple(names), start, source.end, imports, source.kind == "address"))
                continue

            statements.append(_ImportStatement(
                tuple(names), start, end,
                [Import(name, ImportKind.IDENTIFIER, (name,)) for name in names if name != CRYPTO_CONTRACT],
                bare=True,
            ))
        return statements

    def imports(self) -> List[Import]:
        """
        Symbolic imports in source order.

        File-path imports (``import X from "./x.cdc"``) and identifier
        imports (``import X`` and ``import "X"``) are reported; address
        imports and the built-in ``Crypto`` contract are not.
        """
        return [imp for statement in self._statements() for imp in statement.imports]

    def has_imports(self) -> bool:
        return len(self.imports()) > 0

    def replace_import(self, token: str, address: Address) -> "Program":
        """
        Rewrite the first import of ``token`` to the given address.

        ``import X from "<token>"`` and ``import "<token>"`` become
        ``import X from 0x<address>``; ``import <token>`` becomes
        ``import <token> from 0x<address>``. Only the import statement
        itself is rewritten, never comments or string literals.

        Returns:
            This program, rescanned.

        Raises:
            UnresolvedImportError: If no import of ``token`` exists.
        """
        target = f"0x{address.hex()}"
        for statement in self._statements():
            if not any(imp.token == token for imp in statement.imports):
                continue

            rest = [name for name in statement.names if name != token]
            if statement.bare and rest:
                # import A, B -> import A from 0x..; import B
                replacement = f"import {token} from {target}\nimport {', '.join(rest)}"
            else:
                replacement = f"import {', '.join(statement.names)} from {target}"
            code = self._code.decode()
            self._code = (code[:statement.start] + replacement + code[statement.end:]).encode()
            self.reload()
            return self

        raise UnresolvedImportError(token, self.location or None)

    def development_code(self) -> bytes:
        """Source with address imports turned back into ``import "X"``."""
        code = self._code.decode()
        for statement in reversed(self._statements()):
            if statement.address and len(statement.names) == 1:
                code = code[:statement.start] + f'import "{statement.names[0]}"' + code[statement.end:]
        return code.encode()

    # =========================================================================
    # Declarations
    # =========================================================================

    def _declared_contracts(self) -> List[str]:
        names = []
        tokens = self._tokens
        for i, token in enumerate(tokens):
            if token.kind != "ident" or token.text != "contract" or not _is_top_level(token):
                continue
            if i > 0 and tokens[i - 1].text == ".":
                continue
            j = i + 1
            if j < len(tokens) and tokens[j].text == "interface":
                j += 1
            if j < len(tokens) and tokens[j].kind == "ident":
                names.append(tokens[j].text)
        return names

    def name(self) -> str:
        """
        Name of the single contract or contract interface declared.

        Raises:
            ContractNameError: If zero or several are declared.
        """
        names = self._declared_contracts()
        if len(names) != 1:
            raise ContractNameError(self.location or None)
        return names[0]

    def is_contract(self) -> bool:
        return len(self._declared_contracts()) > 0

    def _transactions(self) -> List[int]:
        return [
            i for i, token in enumerate(self._tokens)
            if token.kind == "ident" and token.text == "transaction" and _is_top_level(token)
            and i + 1 < len(self._tokens) and self._tokens[i + 1].text in ("(", "{")
        ]

    def is_transaction(self) -> bool:
        return len(self._transactions()) > 0

    def transaction_count(self) -> int:
        return len(self._transactions())

    def prepare_parameter_count(self) -> int:
        """
        Number of parameters of the transaction's prepare block.

        Returns:
            Parameter count, 0 when there is no prepare block.

        Raises:
            TransactionError: If there is not exactly one transaction.
        """
        found = self._transactions()
        if len(found) != 1:
            raise TransactionError(
                f"can only support one transaction declaration per file, found {len(found)}"
            )

        tokens = self._tokens
        i = found[0] + 1
        if tokens[i].text == "(":
            i = _matching(tokens, i) + 1
        while i < len(tokens) and tokens[i].text != "{":
            i += 1
        if i >= len(tokens):
            return 0

        body_start = i
        body_end = _matching(tokens, body_start)
        body_depth = tokens[body_start].depth + 1

        for j in range(body_start + 1, body_end):
            token = tokens[j]
            if (token.kind == "ident" and token.text == "prepare" and token.depth == body_depth
                    and j + 1 < body_end and tokens[j + 1].text == "("):
                return self._count_parameters(j + 1)
        return 0

    def _count_parameters(self, open_index: int) -> int:
        tokens = self._tokens
        close_index = _matching(tokens, open_index)
        if close_index == open_index + 1:
            return 0

        count = 1
        level = 0
        for token in tokens[open_index + 1:close_index]:
            if token.kind != "punct":
                continue
            if token.text in "([{<":
                level += 1
            elif token.text in ")]}>":
                level -= 1
            elif token.text == "," and level == 0:
                count += 1
        if tokens[close_index - 1].text == ",":
            count -= 1
        return count

    def __repr__(self) -> str:
        return f"Program(location={self.location!r}, bytes={len(self._code)})"
