from __future__ import annotations

from typing import Any, TypeVar, Union

from pydantic import BaseModel, TypeAdapter, ValidationError

from aishell.core.exceptions import ContractValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def format_validation_errors(exc: ValidationError) -> list[str]:
    return [
        f"{'/'.join(str(p) for p in err['loc']) or '$'}: {err['msg']}"
        for err in exc.errors()
    ]


def parse_contract(contract: Union[type[ModelT], TypeAdapter], data: Any, name: str | None = None) -> Any:
    """Validate ``data`` against a model class or ``TypeAdapter``.

    Model instances of the right class are re-validated from their dump so a
    mutated instance cannot slip through. Failures raise
    ``ContractValidationError``.
    """
    label = name or getattr(contract, "__name__", None) or "payload"
    try:
        if isinstance(contract, TypeAdapter):
            if isinstance(data, BaseModel):
                data = data.model_dump(by_alias=True)
            return contract.validate_python(data)
        if isinstance(data, BaseModel):
            data = data.model_dump(by_alias=True)
        return contract.model_validate(data)
    except ValidationError as exc:
        raise ContractValidationError(label, format_validation_errors(exc)) from exc


def is_valid_contract(contract: Union[type[BaseModel], TypeAdapter], data: Any) -> bool:
    try:
        parse_contract(contract, data)
    except ContractValidationError:
        return False
    return True
