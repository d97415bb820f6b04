"""Concrete collaborators for the promotion controller.

Each adapter satisfies one capability protocol from
``buildrelay.core.capabilities`` by driving a real tool:

  - ``maven``: Maven builds and Surefire test reports
  - ``http_store``: Artifactory/Nexus style HTTP artifact repositories
  - ``docker_cli``: image build, tag, push and registry sessions
  - ``jenkins``: parameterized downstream job triggers
"""
