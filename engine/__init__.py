"""执行引擎层（engine）。

统一入口：引擎以 `XxxEngine.run() -> EngineResult` 形式对外提供能力；
快照入口（EventSource）与决策出口（DecisionSink）都由引擎持有，策略本身不持有任何通道。
命令行入口由仓库根目录 `main.py` 统一承载。
"""
