"""Application Layer.

Application services that orchestrate domain logic and wire it to
infrastructure adapters: the `isodistance()` invocation function and the
`isodist` command line.
"""
