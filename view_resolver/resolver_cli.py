import logging
import sys

from pydantic_settings import CliApp

from view_resolver.parameters import ResolverParameters
from view_resolver.resolver import ViewResolver


def main(args: list[str]) -> None:
    params = CliApp.run(ResolverParameters, cli_args=args)
    log_level = logging.DEBUG if params.verbose else logging.INFO
    logging.basicConfig(level=log_level)
    # tifffile warns about every non-conforming tag it meets
    logging.getLogger("tifffile").setLevel(logging.ERROR)
    dataset = ViewResolver(params).run()
    print(dataset.to_dataframe().to_string(index=False))


if __name__ == "__main__":
    main(sys.argv[1:])
