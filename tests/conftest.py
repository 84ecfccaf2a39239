from __future__ import annotations

# example_project 只是被扫描的源码，不参与测试收集
collect_ignore = ["example_project"]
