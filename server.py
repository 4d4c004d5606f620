"""
Grammar Tables Server - JSON API over the grammar analysis engine.

Every endpoint takes the grammar text in the ``grammar`` field of a JSON body
and answers with the ``to_dict()`` form of the requested result.
"""

from typing import Any, Dict, Optional, Tuple

from flask import Flask, jsonify, request

from grammar_tables import SAMPLE_GRAMMARS, AlgorithmType, GrammarError, GrammarWorkflowManager
from parse_simulator import SimulationConfig

DEFAULT_CONFIG = {
    'MAX_STEPS': 1000,
}


def _read_request() -> Tuple[Dict[str, Any], GrammarWorkflowManager]:
    """Read the JSON body and build the workflow for its grammar."""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    cfg_input = data.get('grammar')
    if not cfg_input:
        raise ValueError("No grammar provided")
    if not isinstance(cfg_input, str):
        raise ValueError("Grammar must be a string")
    return data, GrammarWorkflowManager(cfg_input)


def create_app(config: Optional[Dict[str, Any]] = None) -> Flask:
    """
    Create the Flask application.

    Settings come from DEFAULT_CONFIG, then from ``GRAMMAR_TABLES_*``
    environment variables, then from ``config``.
    """
    app = Flask(__name__)
    app.config.from_mapping(DEFAULT_CONFIG)
    app.config.from_prefixed_env("GRAMMAR_TABLES")
    if config:
        app.config.update(config)

    def bad_request(e: Exception):
        app.logger.info("Rejected request to %s: %s", request.path, e)
        return jsonify({"error": str(e)}), 400

    def server_error(e: Exception):
        app.logger.exception("Unexpected error while handling %s", request.path)
        return jsonify({"error": f"Unexpected server error: {e}"}), 500

    @app.route('/samples', methods=['GET'])
    def samples():
        """Return the bundled sample grammars."""
        return jsonify({"samples": SAMPLE_GRAMMARS})

    @app.route('/grammar', methods=['POST'])
    def grammar():
        """Parse grammar text into productions, symbols and skipped lines."""
        try:
            _, workflow = _read_request()
            return jsonify(workflow.grammar.to_dict())
        except (GrammarError, ValueError) as e:
            return bad_request(e)
        except Exception as e:
            return server_error(e)

    @app.route('/first-follow', methods=['POST'])
    def first_follow():
        """Compute FIRST/FOLLOW sets with their step-by-step history."""
        try:
            _, workflow = _read_request()
            return jsonify(workflow.first_follow.to_dict())
        except (GrammarError, ValueError) as e:
            return bad_request(e)
        except Exception as e:
            return server_error(e)

    @app.route('/table', methods=['POST'])
    def table():
        """
        Build the parsing table for ``algorithm``.

        LR algorithms also return the canonical states and construction history.
        """
        try:
            data, workflow = _read_request()
            algorithm = AlgorithmType.from_name(data.get('algorithm', AlgorithmType.LL1.value))
            app.logger.debug("Building %s table", algorithm.value)
            if algorithm == AlgorithmType.LL1:
                return jsonify({"algorithm": algorithm.value, "table": workflow.ll1_table.to_dict()})
            return jsonify(workflow.lr_collection(algorithm).to_dict())
        except (GrammarError, ValueError) as e:
            return bad_request(e)
        except Exception as e:
            return server_error(e)

    @app.route('/simulate', methods=['POST'])
    def simulate():
        """Run the table-driven parser for ``algorithm`` on the ``input`` tokens."""
        try:
            data, workflow = _read_request()
            if 'input' not in data:
                raise ValueError("No input string provided")
            if not isinstance(data['input'], (str, list)):
                raise ValueError("Input must be a token string or a list of tokens")
            algorithm = AlgorithmType.from_name(data.get('algorithm', AlgorithmType.LR1.value))
            config = SimulationConfig(max_steps=int(app.config['MAX_STEPS']))
            result = workflow.simulate(algorithm, data['input'], config)
            app.logger.debug("%s simulation: %s", algorithm.value, result.status.value)
            return jsonify(result.to_dict())
        except (GrammarError, ValueError) as e:
            return bad_request(e)
        except Exception as e:
            return server_error(e)

    return app


app = create_app()


# --- Main Execution ---
if __name__ == '__main__':
    print("--- Grammar Tables Server ---")
    print("Running on http://127.0.0.1:5000")
    print("-" * 29)
    app.run(debug=True, port=5000)
