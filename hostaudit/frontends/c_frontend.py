"""
C to hostaudit IR frontend.

This module translates C source code to the hostaudit IR using tree-sitter
for parsing. It handles:
- Function definitions (also inside #if/#ifdef/#else blocks)
- Scoped symbol resolution: locals, function statics, parameters, globals,
  file statics, enumerators and #define'd integer constants
- typedefs, with kernel integer typedefs (u32, __le16, size_t...) known
  as plain integers
- Expressions: calls, member access, subscripts, casts, pre/post
  operations, GNU statement expressions, inline asm operands
- Control flow: if/else, switch/case, while, do/while, for, labels, goto

Anything tree-sitter cannot parse becomes an opaque expression; calls
inside such a region are still recovered so they are analyzed.
"""

import re
from typing import Dict, List, Optional, Tuple, Union, Any

try:
    import tree_sitter_c as tsc
    from tree_sitter import Language, Parser, Node as TSNode
    TREE_SITTER_C_AVAILABLE = True
except ImportError:
    TREE_SITTER_C_AVAILABLE = False
    TSNode = Any

from hostaudit.ir.types import CType, Location, Symbol, SymbolScope, TypeKind
from hostaudit.ir.expressions import (
    Expr, SymbolRef, Literal, PreOp, PostOp, Cast, Binary, Index, Assignment,
    Conditional, Call, Member, StmtExpr, Opaque,
)
from hostaudit.ir.statements import (
    Stmt, ExprStmt, Return, If, Switch, Case, Loop, Declaration, Block, Label,
    Goto, Break, Continue, Asm, Empty,
)
from hostaudit.ir.procedure import FunctionDef, TranslationUnit
from hostaudit.analysis.findings import FrontendError
from hostaudit.analysis.shapes import constant_value


# Kernel and libc typedefs that are plain integers
KERNEL_INT_TYPEDEF = re.compile(
    r"^(?:"
    r"(?:__)?[us](?:8|16|32|64|128)"
    r"|__(?:le|be)(?:16|32|64)"
    r"|u_?int(?:8|16|32|64)_t|int(?:8|16|32|64)_t|u_char|u_short|u_int|u_long"
    r"|size_t|ssize_t|ptrdiff_t|uintptr_t|intptr_t"
    r"|phys_addr_t|dma_addr_t|resource_size_t|loff_t|off_t|pgoff_t"
    r"|gfp_t|fmode_t|pid_t|uid_t|gid_t|bool|irq_hw_number_t"
    r"|pteval_t|pmdval_t|pudval_t|p4dval_t|pgdval_t|__kernel_\w+_t"
    r"|__virtio(?:16|32|64)|__sum16|__wsum"
    r")$"
)

# Names the compiler or kernel macros synthesize
SYNTHETIC_NAME = re.compile(r"^(?:__UNIQUE_ID_|\$)")

_FLOAT_NAMES = ("float", "double")

_STATEMENT_TYPES = frozenset({
    "expression_statement", "declaration", "return_statement", "if_statement",
    "while_statement", "for_statement", "do_statement", "switch_statement",
    "case_statement", "compound_statement", "labeled_statement",
    "goto_statement", "break_statement", "continue_statement",
    "type_definition", "preproc_def", "preproc_function_def", "preproc_call",
    "preproc_ifdef", "preproc_if", "preproc_else", "preproc_elif",
    "preproc_elifdef", "preproc_include", "attributed_statement", "ERROR",
})

# Operands of these are never evaluated
_UNEVALUATED = frozenset({
    "sizeof_expression", "alignof_expression", "offsetof_expression",
})


def parse_int_literal(text: str) -> Optional[int]:
    """Value of a C integer literal (suffixes, hex, octal, binary); None for floats"""
    t = text.strip().replace("'", "")
    t = re.sub(r"[uUlLzZ]+$", "", t)
    if not t:
        return None
    try:
        if t[:2].lower() in ("0x", "0b"):
            return int(t, 0)
        if len(t) > 1 and t.startswith("0") and t.isdigit():
            return int(t, 8)
        return int(t, 10)
    except ValueError:
        return None


def _strip_comments(text: str) -> str:
    text = re.sub(r"/\*.*?\*/", " ", text, flags=re.S)
    return re.sub(r"//.*", " ", text)


class CFrontend:
    """
    Translates C source code to the hostaudit IR.

    Usage:
        frontend = CFrontend()
        unit = frontend.translate(source_code, "drivers/virtio/virtio_pci.c")

        checker = HostInputChecker()
        checker.analyze(unit)
    """

    def __init__(self):
        if not TREE_SITTER_C_AVAILABLE:
            raise FrontendError(
                "tree-sitter-c is required. "
                "Install with: pip install tree-sitter tree-sitter-c"
            )

        self.parser = Parser(Language(tsc.language()))

        # State during translation
        self._filename = "<unknown>"
        self._source = b""
        self._unit: Optional[TranslationUnit] = None
        self._function: Optional[str] = None
        self._scopes: List[Dict[str, Symbol]] = []
        self._typedefs: List[Dict[str, CType]] = [{}]
        self._globals: Dict[str, Symbol] = {}
        self._constants: Dict[str, Symbol] = {}
        self._externs: Dict[str, Symbol] = {}

    def translate(self, source_code: Union[str, bytes], filename: str = "<unknown>") -> TranslationUnit:
        """Translate C source code to a TranslationUnit."""
        if isinstance(source_code, str):
            source_code = source_code.encode("utf8")
        self._filename = filename
        self._source = source_code
        self._function = None
        self._scopes = []
        self._typedefs = [{}]
        self._globals = {}
        self._constants = {}
        self._externs = {}

        tree = self.parser.parse(source_code)
        unit = TranslationUnit(filename=filename)
        self._unit = unit

        self._translate_top_level(tree.root_node, unit)

        unit.globals = dict(self._globals)
        unit.constants = {n: s.value for n, s in self._constants.items()}
        self._unit = None
        return unit

    # =========================================================================
    # File scope
    # =========================================================================

    def _translate_top_level(self, node: TSNode, unit: TranslationUnit) -> None:
        """Translate file-scope children, descending into preprocessor blocks."""
        for child in node.named_children:
            if child.type == "function_definition":
                fn = self._translate_function(child)
                if fn:
                    unit.add_function(fn)
            elif child.type == "declaration":
                self._translate_global_declaration(child)
            elif child.type == "type_definition":
                self._translate_typedef(child)
            elif child.type == "preproc_def":
                self._translate_define(child)
            elif child.type in ("preproc_ifdef", "preproc_if", "preproc_else",
                                "preproc_elif", "preproc_elifdef", "linkage_specification",
                                "declaration_list"):
                self._translate_top_level(child, unit)
            elif child.type in ("struct_specifier", "union_specifier", "enum_specifier"):
                self._base_type(child)
            elif child.type == "ERROR":
                self._note_error(child)
                self._translate_top_level(child, unit)

    def _translate_global_declaration(self, node: TSNode) -> None:
        storage = self._storage_class(node)
        base = self._base_type(node.child_by_field_name("type"))
        for decl in node.children_by_field_name("declarator"):
            name, typ = self._apply_declarator(base, decl)
            if not name:
                continue
            if typ.kind == TypeKind.FUNCTION:
                scope = SymbolScope.FUNCTION
            elif storage == "static":
                scope = SymbolScope.STATIC
            elif storage == "extern":
                scope = SymbolScope.EXTERN
            else:
                scope = SymbolScope.GLOBAL
            existing = self._globals.get(name)
            if existing is not None and existing.scope == SymbolScope.FUNCTION and scope == SymbolScope.FUNCTION:
                continue
            self._globals[name] = Symbol(name, typ, scope, None, self._line(decl))

    def _translate_typedef(self, node: TSNode) -> None:
        base = self._base_type(node.child_by_field_name("type"))
        for decl in node.children_by_field_name("declarator"):
            name, typ = self._apply_declarator(base, decl)
            if name:
                if typ is base and base.kind != TypeKind.UNKNOWN:
                    typ = CType(base.kind, name, base.pointee)
                elif KERNEL_INT_TYPEDEF.match(name) and typ.kind == TypeKind.UNKNOWN:
                    typ = CType.int_type(name)
                self._typedefs[-1][name] = typ

    def _translate_define(self, node: TSNode) -> None:
        """Record `#define NAME <integer constant expression>`"""
        name_node = node.child_by_field_name("name")
        value_node = node.child_by_field_name("value")
        if name_node is None or value_node is None:
            return
        value = self._define_value(self._get_text(value_node))
        if value is not None:
            name = self._get_text(name_node)
            self._constants[name] = Symbol(name, CType.int_type(), SymbolScope.CONSTANT,
                                           None, self._line(node), value)

    def _define_value(self, text: str) -> Optional[int]:
        text = _strip_comments(text).replace("\\\n", " ").strip()
        if not text:
            return None
        saved = self._source
        self._source = f"long __hostaudit_define = ({text});".encode("utf8")
        try:
            tree = self.parser.parse(self._source)
            if tree.root_node.has_error:
                return None
            decl = tree.root_node.named_children[0]
            init = decl.child_by_field_name("declarator")
            value = init.child_by_field_name("value") if init is not None else None
            if value is None:
                return None
            return constant_value(self._translate_expression(value))
        finally:
            self._source = saved

    # =========================================================================
    # Functions
    # =========================================================================

    def _translate_function(self, node: TSNode) -> Optional[FunctionDef]:
        """Translate function definition"""
        declarator = node.child_by_field_name("declarator")
        if not declarator:
            return None

        ret_base = self._base_type(node.child_by_field_name("type"))
        func_name, func_type = self._apply_declarator(ret_base, declarator)
        if not func_name:
            return None

        fn_symbol = Symbol(func_name, func_type, SymbolScope.FUNCTION, None, self._line(declarator))
        self._globals[func_name] = fn_symbol

        self._function = func_name
        self._scopes = [{}]
        self._typedefs.append({})
        try:
            params = self._translate_parameters(declarator)
            for param in params:
                self._scopes[-1][param.name] = param

            body_node = node.child_by_field_name("body")
            body = self._translate_block(body_node) if body_node else Block()
        finally:
            self._typedefs.pop()
            self._scopes = []
            self._function = None

        ret_type = func_type.pointee if func_type.kind == TypeKind.FUNCTION and func_type.pointee else ret_base
        fn = FunctionDef(
            name=func_name,
            symbol=fn_symbol,
            params=params,
            ret_type=ret_type,
            body=body,
            loc=self._get_location(declarator),
            end_line=node.end_point[0] + 1,
        )
        return fn

    def _function_declarator(self, declarator: TSNode) -> Optional[TSNode]:
        while declarator is not None and declarator.type != "function_declarator":
            declarator = declarator.child_by_field_name("declarator")
        return declarator

    def _translate_parameters(self, declarator: TSNode) -> List[Symbol]:
        """Translate function parameters"""
        params: List[Symbol] = []
        fdecl = self._function_declarator(declarator)
        if fdecl is None:
            return params
        params_node = fdecl.child_by_field_name("parameters")
        if params_node is None:
            return params

        for child in params_node.named_children:
            if child.type != "parameter_declaration":
                continue
            base = self._base_type(child.child_by_field_name("type"))
            decl_node = child.child_by_field_name("declarator")
            if decl_node is None:
                continue
            name, typ = self._apply_declarator(base, decl_node)
            if typ.kind == TypeKind.ARRAY:
                # Array parameters decay to pointers
                typ = CType.pointer_to(typ.pointee or CType.unknown_type())
            if name:
                params.append(Symbol(name, typ, SymbolScope.PARAMETER,
                                     self._function, self._line(child),
                                     synthetic=bool(SYNTHETIC_NAME.match(name))))
        return params

    # =========================================================================
    # Types
    # =========================================================================

    def _base_type(self, node: Optional[TSNode]) -> CType:
        """Translate a type specifier (before declarators are applied)"""
        if node is None:
            return CType.int_type()     # implicit int
        kind = node.type
        text = " ".join(self._get_text(node).split())

        if kind == "primitive_type":
            if text == "void":
                return CType.void_type()
            if text in _FLOAT_NAMES:
                return CType(TypeKind.FLOAT, text)
            return CType.int_type(text)

        if kind == "sized_type_specifier":
            if "double" in text:
                return CType(TypeKind.FLOAT, text)
            return CType.int_type(text)

        if kind == "type_identifier":
            for scope in reversed(self._typedefs):
                if text in scope:
                    resolved = scope[text]
                    return CType(resolved.kind, text, resolved.pointee)
            if KERNEL_INT_TYPEDEF.match(text):
                return CType.int_type(text)
            return CType.unknown_type(text)

        if kind == "enum_specifier":
            self._translate_enumerators(node)
            name = node.child_by_field_name("name")
            return CType(TypeKind.ENUM, f"enum {self._get_text(name)}" if name else "enum")

        if kind in ("struct_specifier", "union_specifier"):
            name = node.child_by_field_name("name")
            keyword = "struct" if kind == "struct_specifier" else "union"
            tkind = TypeKind.STRUCT if kind == "struct_specifier" else TypeKind.UNION
            return CType(tkind, f"{keyword} {self._get_text(name)}" if name else keyword)

        return CType.unknown_type(text)

    def _translate_enumerators(self, node: TSNode) -> None:
        body = node.child_by_field_name("body")
        if body is None:
            return
        next_value = 0
        for child in body.named_children:
            if child.type != "enumerator":
                continue
            name_node = child.child_by_field_name("name")
            value_node = child.child_by_field_name("value")
            if value_node is not None:
                value = constant_value(self._translate_expression(value_node))
                if value is not None:
                    next_value = value
            name = self._get_text(name_node)
            self._constants[name] = Symbol(name, CType(TypeKind.ENUM, "int"), SymbolScope.CONSTANT,
                                           None, self._line(child), next_value)
            next_value += 1

    def _apply_declarator(self, base: CType, node: Optional[TSNode]) -> Tuple[Optional[str], CType]:
        """Walk a declarator down to its identifier, wrapping the type on the way"""
        if node is None:
            return None, base
        kind = node.type
        if kind in ("identifier", "field_identifier", "type_identifier"):
            return self._get_text(node), base
        if kind == "pointer_declarator":
            return self._apply_declarator(CType.pointer_to(base), node.child_by_field_name("declarator"))
        if kind == "array_declarator":
            size = node.child_by_field_name("size")
            array = CType.array_of(base, self._get_text(size) if size else "")
            return self._apply_declarator(array, node.child_by_field_name("declarator"))
        if kind == "function_declarator":
            fn_type = CType(TypeKind.FUNCTION, f"{base} ()", pointee=base)
            return self._apply_declarator(fn_type, node.child_by_field_name("declarator"))
        if kind == "init_declarator":
            return self._apply_declarator(base, node.child_by_field_name("declarator"))
        if kind in ("parenthesized_declarator", "attributed_declarator"):
            for child in node.named_children:
                if child.type != "attribute_declaration":
                    return self._apply_declarator(base, child)
        return None, base

    def _type_descriptor(self, node: Optional[TSNode]) -> CType:
        """Type of a cast or sizeof operand: `(u8 *)`"""
        if node is None:
            return CType.unknown_type()
        base = self._base_type(node.child_by_field_name("type"))
        text = " ".join(self._get_text(node).split())
        declarator = node.child_by_field_name("declarator")
        if declarator is not None and "*" in self._get_text(declarator):
            return CType(TypeKind.POINTER, text, pointee=base)
        if declarator is not None and "[" in self._get_text(declarator):
            return CType(TypeKind.ARRAY, text, pointee=base)
        return CType(base.kind, text, base.pointee)

    def _storage_class(self, node: TSNode) -> Optional[str]:
        for child in node.children:
            if child.type == "storage_class_specifier":
                return self._get_text(child)
        return None

    # =========================================================================
    # Statements
    # =========================================================================

    def _translate_block(self, node: TSNode) -> Block:
        """Translate compound statement (block), opening a scope"""
        self._scopes.append({})
        self._typedefs.append({})
        try:
            stmts: List[Stmt] = []
            for child in node.named_children:
                stmts.extend(self._translate_statement(child))
            return Block(stmts, self._get_location(node))
        finally:
            self._typedefs.pop()
            self._scopes.pop()

    def _single(self, node: Optional[TSNode]) -> Optional[Stmt]:
        """Translate a statement position that holds exactly one statement"""
        if node is None:
            return None
        stmts = self._translate_statement(node)
        if len(stmts) == 1:
            return stmts[0]
        return Block(stmts, self._get_location(node))

    def _translate_statement(self, node: TSNode) -> List[Stmt]:
        """Translate a statement (declarations may yield several)"""
        kind = node.type
        loc = self._get_location(node)

        if kind == "expression_statement":
            inner = node.named_children[0] if node.named_children else None
            if inner is None:
                return [Empty(loc)]
            if inner.type == "gnu_asm_expression":
                return [Asm(self._get_text(inner), self._asm_operands(inner), loc)]
            return [ExprStmt(self._translate_expression(inner), loc)]

        elif kind == "declaration":
            return self._translate_local_declaration(node)

        elif kind == "return_statement":
            value = node.named_children[0] if node.named_children else None
            return [Return(self._translate_expression(value) if value is not None else None, loc)]

        elif kind == "if_statement":
            cond = self._translate_expression(node.child_by_field_name("condition"))
            then = self._single(node.child_by_field_name("consequence")) or Empty(loc)
            alt = node.child_by_field_name("alternative")
            if alt is not None and alt.type == "else_clause":
                alt = alt.named_children[0] if alt.named_children else None
            return [If(cond, then, self._single(alt), loc)]

        elif kind == "while_statement":
            cond = self._translate_expression(node.child_by_field_name("condition"))
            body = self._single(node.child_by_field_name("body")) or Empty(loc)
            return [Loop("while", body, pre_cond=cond, loc=loc)]

        elif kind == "do_statement":
            body = self._single(node.child_by_field_name("body")) or Empty(loc)
            cond = self._translate_expression(node.child_by_field_name("condition"))
            return [Loop("do", body, post_cond=cond, loc=loc)]

        elif kind == "for_statement":
            return [self._translate_for(node)]

        elif kind == "switch_statement":
            cond = self._translate_expression(node.child_by_field_name("condition"))
            body = self._single(node.child_by_field_name("body")) or Empty(loc)
            return [Switch(cond, body, loc)]

        elif kind == "case_statement":
            value_node = node.child_by_field_name("value")
            value = self._translate_expression(value_node) if value_node is not None else None
            stmts: List[Stmt] = []
            for child in node.named_children:
                if value_node is not None and child.id == value_node.id:
                    continue
                stmts.extend(self._translate_statement(child))
            return [Case(value, stmts, loc)]

        elif kind == "compound_statement":
            return [self._translate_block(node)]

        elif kind == "labeled_statement":
            label = node.child_by_field_name("label")
            inner = [c for c in node.named_children if label is None or c.id != label.id]
            stmt = self._single(inner[-1]) if inner else None
            return [Label(self._get_text(label), stmt, loc)]

        elif kind == "goto_statement":
            return [Goto(self._get_text(node.child_by_field_name("label")), loc)]

        elif kind == "break_statement":
            return [Break(loc)]

        elif kind == "continue_statement":
            return [Continue(loc)]

        elif kind == "type_definition":
            self._translate_typedef(node)
            return []

        elif kind == "preproc_def":
            self._translate_define(node)
            return []

        elif kind in ("preproc_ifdef", "preproc_if", "preproc_else", "preproc_elif",
                      "preproc_elifdef", "attributed_statement"):
            # Every preprocessor branch is analyzed
            stmts = []
            for child in node.named_children:
                if child.type in _STATEMENT_TYPES or child.type.endswith("_statement"):
                    stmts.extend(self._translate_statement(child))
            return stmts

        elif kind in ("preproc_function_def", "preproc_call", "preproc_include", "comment"):
            return []

        elif kind == "ERROR":
            self._note_error(node)
            return [ExprStmt(self._opaque(node), loc)]

        # Unknown statement shape: keep its calls visible
        return [ExprStmt(self._opaque(node), loc)]

    def _translate_for(self, node: TSNode) -> Loop:
        loc = self._get_location(node)
        self._scopes.append({})
        try:
            init = node.child_by_field_name("initializer")
            pre: Optional[Stmt] = None
            if init is not None:
                if init.type == "declaration":
                    decls = self._translate_local_declaration(init)
                    pre = decls[0] if len(decls) == 1 else Block(decls, self._get_location(init))
                else:
                    pre = ExprStmt(self._translate_expression(init), self._get_location(init))
            cond_node = node.child_by_field_name("condition")
            cond = self._translate_expression(cond_node) if cond_node is not None else None
            update = node.child_by_field_name("update")
            post = ExprStmt(self._translate_expression(update), self._get_location(update)) \
                if update is not None else None
            body = self._single(node.child_by_field_name("body")) or Empty(loc)
            return Loop("for", body, pre=pre, pre_cond=cond, post=post, loc=loc)
        finally:
            self._scopes.pop()

    def _translate_local_declaration(self, node: TSNode) -> List[Stmt]:
        """One Declaration per declarator"""
        storage = self._storage_class(node)
        base = self._base_type(node.child_by_field_name("type"))
        decls: List[Stmt] = []
        for decl in node.children_by_field_name("declarator"):
            name, typ = self._apply_declarator(base, decl)
            if not name:
                continue
            if typ.kind == TypeKind.FUNCTION:
                self._globals.setdefault(name, Symbol(name, typ, SymbolScope.FUNCTION))
                continue
            if storage == "static":
                scope = SymbolScope.STATIC_LOCAL
            elif storage == "extern":
                scope = SymbolScope.EXTERN
            else:
                scope = SymbolScope.LOCAL
            symbol = Symbol(name, typ, scope, self._function, self._line(decl),
                            synthetic=bool(SYNTHETIC_NAME.match(name)))
            self._scopes[-1][name] = symbol

            init = None
            if decl.type == "init_declarator":
                value = decl.child_by_field_name("value")
                if value is not None:
                    init = self._translate_expression(value)
            decls.append(Declaration(symbol, init, self._get_location(decl)))
        return decls

    def _asm_operands(self, node: TSNode) -> List[Expr]:
        operands: List[Expr] = []
        for field_name in ("output_operands", "input_operands"):
            group = node.child_by_field_name(field_name)
            if group is None:
                continue
            for operand in group.named_children:
                value = operand.child_by_field_name("value")
                if value is not None:
                    operands.append(self._translate_expression(value))
        return operands

    # =========================================================================
    # Expressions
    # =========================================================================

    def _translate_expression(self, node: Optional[TSNode]) -> Expr:
        """Translate expression"""
        if node is None:
            return Opaque("", "missing")
        kind = node.type
        loc = self._get_location(node)

        if kind == "identifier":
            name = self._get_text(node)
            if name == "NULL":
                return Literal(0, "NULL", loc)
            return SymbolRef(name, self._lookup(name), loc)

        elif kind == "number_literal":
            text = self._get_text(node)
            value = parse_int_literal(text)
            if value is None:
                try:
                    return Literal(float(re.sub(r"[fFlL]+$", "", text)), text, loc)
                except ValueError:
                    return Literal(None, text, loc)
            return Literal(value, text, loc)

        elif kind == "char_literal":
            text = self._get_text(node)
            inner = text[1:-1] if len(text) >= 3 else ""
            value = ord(inner) if len(inner) == 1 else None
            return Literal(value, text, loc)

        elif kind in ("string_literal", "concatenated_string", "raw_string_literal"):
            text = self._get_text(node)
            return Literal(text.strip('"'), " ".join(text.split()), loc)

        elif kind in ("true", "false"):
            return Literal(1 if kind == "true" else 0, kind, loc)

        elif kind == "null":
            return Literal(0, self._get_text(node), loc)

        elif kind == "binary_expression":
            op_node = node.child_by_field_name("operator")
            return Binary(self._get_text(op_node) if op_node else "+",
                          self._translate_expression(node.child_by_field_name("left")),
                          self._translate_expression(node.child_by_field_name("right")),
                          loc)

        elif kind in ("unary_expression", "pointer_expression"):
            op_node = node.child_by_field_name("operator")
            return PreOp(self._get_text(op_node) if op_node else "-",
                         self._translate_expression(node.child_by_field_name("argument")),
                         loc)

        elif kind == "update_expression":
            op_node = node.child_by_field_name("operator")
            arg = node.child_by_field_name("argument")
            op = self._get_text(op_node) if op_node else "++"
            operand = self._translate_expression(arg)
            if op_node is not None and arg is not None and op_node.start_byte < arg.start_byte:
                return PreOp(op, operand, loc)
            return PostOp(op, operand, loc)

        elif kind == "subscript_expression":
            return Index.of(self._translate_expression(node.child_by_field_name("argument")),
                            self._translate_expression(node.child_by_field_name("index")),
                            loc)

        elif kind == "field_expression":
            arg = node.child_by_field_name("argument")
            field_node = node.child_by_field_name("field")
            op_node = node.child_by_field_name("operator")
            if op_node is not None:
                arrow = self._get_text(op_node) == "->"
            else:
                between = self._source[arg.end_byte:field_node.start_byte] if arg and field_node else b""
                arrow = b"->" in between
            return Member(self._translate_expression(arg), self._get_text(field_node), arrow, loc)

        elif kind == "call_expression":
            func = node.child_by_field_name("function")
            args = [self._translate_expression(a) for a in self._get_call_args(node)]
            if func is not None and func.type == "identifier":
                return Call(self._get_text(func), args, None, loc)
            return Call(None, args, self._translate_expression(func), loc)

        elif kind == "parenthesized_expression":
            for child in node.named_children:
                if child.type == "compound_statement":
                    return StmtExpr(self._translate_block(child), loc)
                if child.type != "comment":
                    return self._translate_expression(child)
            return Opaque(self._get_text(node), kind, [], loc)

        elif kind == "conditional_expression":
            cond = self._translate_expression(node.child_by_field_name("condition"))
            conseq = node.child_by_field_name("consequence")
            alt = self._translate_expression(node.child_by_field_name("alternative"))
            # GNU `a ?: b` keeps no separate true branch
            then = self._translate_expression(conseq) if conseq is not None else None
            return Conditional(cond, then, alt, loc)

        elif kind == "cast_expression":
            typ = self._type_descriptor(node.child_by_field_name("type"))
            return Cast(typ, self._translate_expression(node.child_by_field_name("value")), loc)

        elif kind == "assignment_expression":
            op_node = node.child_by_field_name("operator")
            return Assignment(self._get_text(op_node) if op_node else "=",
                              self._translate_expression(node.child_by_field_name("left")),
                              self._translate_expression(node.child_by_field_name("right")),
                              loc)

        elif kind == "comma_expression":
            return Binary(",",
                          self._translate_expression(node.child_by_field_name("left")),
                          self._translate_expression(node.child_by_field_name("right")),
                          loc)

        elif kind in _UNEVALUATED:
            return Opaque(self._get_text(node), kind, [], loc)

        elif kind in ("initializer_list", "compound_literal_expression"):
            return Opaque(self._get_text(node), kind, self._initializer_values(node), loc)

        elif kind == "gnu_asm_expression":
            return Opaque(self._get_text(node), kind, self._asm_operands(node), loc)

        elif kind == "ERROR":
            self._note_error(node)

        return self._opaque(node)

    def _initializer_values(self, node: TSNode) -> List[Expr]:
        if node.type == "compound_literal_expression":
            value = node.child_by_field_name("value")
            return self._initializer_values(value) if value is not None else []
        values: List[Expr] = []
        for child in node.named_children:
            if child.type == "initializer_pair":
                value = child.child_by_field_name("value")
                if value is not None:
                    values.append(self._translate_expression(value))
            elif child.type != "comment":
                values.append(self._translate_expression(child))
        return values

    def _opaque(self, node: TSNode) -> Opaque:
        """Opaque expression keeping the outermost calls found inside `node`"""
        return Opaque(self._get_text(node), node.type,
                      [self._translate_expression(c) for c in self._calls_within(node)],
                      self._get_location(node))

    def _calls_within(self, node: TSNode) -> List[TSNode]:
        calls: List[TSNode] = []
        for child in node.named_children:
            if child.type == "call_expression":
                calls.append(child)
            elif child.type not in _UNEVALUATED:
                calls.extend(self._calls_within(child))
        return calls

    # =========================================================================
    # Symbols
    # =========================================================================

    def _lookup(self, name: str) -> Symbol:
        """Resolve an identifier; unknown names become cached EXTERN symbols"""
        for scope in reversed(self._scopes):
            if name in scope:
                return scope[name]
        if name in self._constants:
            return self._constants[name]
        if name in self._globals:
            return self._globals[name]
        if name not in self._externs:
            self._externs[name] = Symbol(name, CType.unknown_type(), SymbolScope.EXTERN,
                                         synthetic=bool(SYNTHETIC_NAME.match(name)))
        return self._externs[name]

    # =========================================================================
    # Helpers
    # =========================================================================

    def _get_text(self, node: Optional[TSNode]) -> str:
        if node is None:
            return ""
        return self._source[node.start_byte:node.end_byte].decode("utf8", errors="replace")

    def _get_location(self, node) -> Location:
        if hasattr(node, 'start_point'):
            return Location(
                file=self._filename,
                line=node.start_point[0] + 1,
                column=node.start_point[1],
                end_line=node.end_point[0] + 1,
                end_column=node.end_point[1]
            )
        return Location(file=self._filename, line=1, column=0)

    def _line(self, node: TSNode) -> int:
        return node.start_point[0] + 1

    def _get_call_args(self, node: TSNode) -> List[TSNode]:
        args_node = node.child_by_field_name("arguments")
        if args_node is None:
            return []
        return [c for c in args_node.named_children if c.type != "comment"]

    def _note_error(self, node: TSNode) -> None:
        if self._unit is not None:
            self._unit.errors.append(
                f"{self._filename}:{self._line(node)}: unparsed region degraded to an opaque expression")
