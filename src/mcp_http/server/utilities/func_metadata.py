import inspect
from collections.abc import Awaitable, Callable
from typing import Annotated, Any, get_type_hints

from pydantic import BaseModel, ConfigDict, Field, WithJsonSchema, create_model
from pydantic_core import PydanticUndefined

from mcp_http.server.exceptions import InvalidSignature


class ArgModelBase(BaseModel):
    """A model representing the arguments to a function."""

    def model_dump_one_level(self) -> dict[str, Any]:
        """Return a dict of the model's fields, one level deep.

        That is, sub-models etc are not dumped - they are kept as pydantic models.
        """
        kwargs: dict[str, Any] = {}
        for field_name in self.__class__.model_fields.keys():
            kwargs[field_name] = getattr(self, field_name)
        return kwargs

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
    )


class FuncMetadata(BaseModel):
    arg_model: Annotated[type[ArgModelBase], WithJsonSchema(None)]

    async def call_fn_with_arg_validation(
        self,
        fn: Callable[..., Any],
        fn_is_async: bool,
        arguments_to_validate: dict[str, Any],
    ) -> Any:
        """Call the given function with arguments validated against the argument model."""
        arguments_parsed_model = self.arg_model.model_validate(arguments_to_validate)
        arguments_parsed_dict = arguments_parsed_model.model_dump_one_level()

        if fn_is_async:
            result = fn(**arguments_parsed_dict)
            if isinstance(result, Awaitable):
                return await result
            return result
        return fn(**arguments_parsed_dict)

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
    )


def func_metadata(func: Callable[..., Any]) -> FuncMetadata:
    """Given a function, return metadata including a pydantic model representing its
    signature.

    The use case for this is
    ```
    meta = func_metadata(func)
    validated_args = meta.arg_model.model_validate(some_raw_data_dict)
    return func(**validated_args.model_dump_one_level())
    ```

    Untyped parameters accept any JSON value. Variadic parameters are not
    allowed since tool arguments always arrive as a single JSON object.
    """
    sig = inspect.signature(func)
    try:
        hints = get_type_hints(func, include_extras=True)
    except (NameError, TypeError):
        hints = {}

    dynamic_pydantic_model_params: dict[str, Any] = {}
    for param in sig.parameters.values():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            raise InvalidSignature(f"Parameter {param.name} of {func.__name__} cannot be variadic")
        if param.name.startswith("_"):
            raise InvalidSignature(f"Parameter {param.name} of {func.__name__} cannot start with '_'")

        default = param.default if param.default is not inspect.Parameter.empty else PydanticUndefined
        annotation = hints.get(param.name, param.annotation)
        if annotation is inspect.Parameter.empty:
            annotation = Annotated[Any, WithJsonSchema({"title": param.name})]
        dynamic_pydantic_model_params[param.name] = (annotation, Field(default=default))

    arguments_model = create_model(
        f"{getattr(func, '__name__', 'tool')}Arguments",
        **dynamic_pydantic_model_params,
        __base__=ArgModelBase,
    )
    return FuncMetadata(arg_model=arguments_model)
