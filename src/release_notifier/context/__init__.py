"""Context modules that enrich a release before it is announced.

These fetch data from external systems (currently CircleCI) and reduce
it to something the message formatter can display.
"""
